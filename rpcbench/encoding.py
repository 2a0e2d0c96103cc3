"""Wire encodings, method types and the JSON and raw serializers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MethodType(Enum):
    """Kind of RPC method."""

    UNARY = 1
    CLIENT_STREAM = 2
    SERVER_STREAM = 3
    BIDIRECTIONAL_STREAM = 4


class Encoding(str, Enum):
    """Representation of the data on the wire."""

    UNSPECIFIED = ""
    JSON = "json"
    THRIFT = "thrift"
    RAW = "raw"
    PROTOBUF = "proto"

    @classmethod
    def parse(cls, text: str | bytes) -> Encoding:
        """Parse an encoding name case-insensitively."""
        if isinstance(text, bytes):
            text = text.decode("utf-8")
        name = text.lower()
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"unknown encoding: {json.dumps(name)}") from None

    def __str__(self) -> str:
        return self.value


@dataclass
class Request:
    """An outgoing request: the procedure name and the encoded body."""

    method: str
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class Response:
    """A received response body."""

    body: bytes = b""


def _parse_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError as exc:
        raise ValueError(f"failed to parse JSON: {exc}") from exc


@dataclass(frozen=True)
class JSONSerializer:
    """Serializer for JSON-encoded unary requests."""

    method_name: str

    def encoding(self) -> Encoding:
        return Encoding.JSON

    def method_type(self) -> MethodType:
        return MethodType.UNARY

    def request(self, body: bytes) -> Request:
        """Validate the input and re-encode it compactly with sorted keys."""
        data = _parse_json(body)
        encoded = json.dumps(data, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
        return Request(method=self.method_name, body=encoded.encode("utf-8"))

    def response(self, response: Response) -> Any:
        return _parse_json(response.body)

    def check_success(self, response: Response) -> None:
        self.response(response)


@dataclass(frozen=True)
class RawSerializer:
    """Serializer that passes bytes through unchanged."""

    method_name: str

    def encoding(self) -> Encoding:
        return Encoding.RAW

    def method_type(self) -> MethodType:
        return MethodType.UNARY

    def request(self, body: bytes) -> Request:
        return Request(method=self.method_name, body=body)

    def response(self, response: Response) -> bytes:
        return response.body

    def check_success(self, response: Response | None) -> None:
        """Any raw body counts as a success; a missing response is accepted too."""
        if response is not None:
            self.response(response)


def split_method(full_method: str) -> tuple[str, str]:
    """Split ``package.Service/Method`` into service and method names."""
    parts = full_method.split("/")
    if len(parts) == 1:
        return parts[0], ""
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(
        f"invalid proto method {json.dumps(full_method)}, "
        "expected form package.Service/Method"
    )