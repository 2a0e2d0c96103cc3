"""Decoders that split request input into a sequence of JSON or YAML documents."""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import BinaryIO, Union

import yaml

_JSON_WHITESPACE = " \t\n\r"


def _yaml_error_message(exc: yaml.YAMLError) -> str:
    if isinstance(exc, yaml.MarkedYAMLError) and exc.problem:
        mark = exc.problem_mark
        if mark is not None:
            return f"yaml: line {mark.line + 1}: {exc.problem}"
        return f"yaml: {exc.problem}"
    return f"yaml: {exc}"


class JSONInputDecoder:
    """Reads consecutive JSON values separated by whitespace."""

    def __init__(self, data: bytes) -> None:
        self._text = data.decode("utf-8")
        self._pos = 0
        self._decoder = json.JSONDecoder()

    def next_yaml_bytes(self) -> bytes:
        """Return the raw bytes of the next JSON value; raise EOFError when done."""
        text = self._text
        pos = self._pos
        while pos < len(text) and text[pos] in _JSON_WHITESPACE:
            pos += 1
        if pos >= len(text) or text[pos] in "]}":
            self._pos = pos
            raise EOFError("EOF")

        try:
            _, end = self._decoder.raw_decode(text, pos)
        except json.JSONDecodeError as exc:
            self._pos = len(text)
            if exc.pos >= len(text):
                raise ValueError("unexpected EOF") from exc
            raise ValueError(str(exc)) from exc

        self._pos = end
        return text[pos:end].encode("utf-8")

    def __iter__(self) -> Iterator[bytes]:
        while True:
            try:
                yield self.next_yaml_bytes()
            except EOFError:
                return


class YAMLInputDecoder:
    """Reads consecutive YAML documents separated by ``---``."""

    def __init__(self, data: bytes) -> None:
        self._documents = yaml.safe_load_all(data)

    def next_yaml_bytes(self) -> bytes:
        """Return the next document re-marshalled as YAML; raise EOFError when done."""
        try:
            document = next(self._documents)
        except StopIteration:
            raise EOFError("EOF") from None
        except yaml.YAMLError as exc:
            raise ValueError(_yaml_error_message(exc)) from exc

        dumped = yaml.safe_dump(document, default_flow_style=False, allow_unicode=True)
        if dumped.endswith("\n...\n"):
            dumped = dumped[: -len("...\n")]
        return dumped.encode("utf-8")

    def __iter__(self) -> Iterator[bytes]:
        while True:
            try:
                yield self.next_yaml_bytes()
            except EOFError:
                return


Decoder = Union[JSONInputDecoder, YAMLInputDecoder]


def is_json_input(data: bytes) -> bool:
    """Input is treated as JSON when its first byte is ``{``."""
    return data[:1] == b"{"


def new_decoder(reader: BinaryIO | bytes | str) -> Decoder:
    """Pick a JSON or YAML decoder for the given input."""
    if isinstance(reader, (bytes, bytearray, str)):
        data = reader
    else:
        data = reader.read()
    if isinstance(data, str):
        data = data.encode("utf-8")
    data = bytes(data)

    if is_json_input(data):
        return JSONInputDecoder(data)
    return YAMLInputDecoder(data)