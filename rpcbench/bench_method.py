"""Callers that make one benchmark request, and warming of benchmark transports."""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from .encoding import MethodType, Request, Response
from .handler import StreamError, StreamOptions, make_stream_request


class BenchmarkCaller(Protocol):
    def call(self, transport: Any) -> CallReport: ...

    def method_type(self) -> MethodType: ...


@dataclass(frozen=True)
class CallReport:
    """Outcome of one successful call; latency is in nanoseconds."""

    latency: int


@dataclass(frozen=True)
class StreamCallReport(CallReport):
    """Outcome of one streaming call, with the number of messages each way."""

    messages_sent: int = 0
    messages_received: int = 0


class StreamIOBenchmark:
    """Replays a fixed list of request messages and records every response."""

    def __init__(self, requests: Optional[Sequence[bytes]] = None) -> None:
        self._requests = list(requests or ())
        self._index = 0
        self.responses: list[bytes] = []

    def next_request(self) -> bytes:
        """Return the next request; raise EOFError once all have been sent."""
        if self._index == len(self._requests):
            raise EOFError("EOF")
        request = self._requests[self._index]
        self._index += 1
        return request

    def handle_response(self, body: bytes) -> None:
        self.responses.append(body)

    def messages_sent(self) -> int:
        return self._index

    def messages_received(self) -> int:
        return len(self.responses)


@dataclass(frozen=True)
class UnaryBenchmarkMethod:
    """Makes one unary request through a transport's ``call`` method."""

    serializer: Any
    request: Request

    def call(self, transport: Any) -> CallReport:
        start = time.perf_counter_ns()
        response = transport.call(self.request)
        latency = time.perf_counter_ns() - start
        self.serializer.check_success(response)
        return CallReport(latency=latency)

    def method_type(self) -> MethodType:
        return MethodType.UNARY


@dataclass(frozen=True)
class StreamBenchmarkMethod:
    """Makes one streaming call, replaying the same request messages each time."""

    serializer: Any
    stream_request: Request
    stream_request_messages: list[bytes] = field(default_factory=list)
    opts: StreamOptions = field(default_factory=StreamOptions)

    def call(self, transport: Any) -> StreamCallReport:
        open_stream = getattr(transport, "call_stream", None)
        if open_stream is None:
            protocol = getattr(transport, "protocol", type(transport).__name__)
            raise StreamError(f'Transport does not support stream calls: "{protocol}"')

        stream_io = StreamIOBenchmark(self.stream_request_messages)
        start = time.perf_counter_ns()
        try:
            stream = open_stream(self.stream_request)
        except Exception as exc:
            raise StreamError(f"Failed while making stream call: {exc}") from exc
        make_stream_request(stream, self.serializer.method_type(), stream_io, self.opts)
        report = StreamCallReport(
            latency=time.perf_counter_ns() - start,
            messages_sent=stream_io.messages_sent(),
            messages_received=stream_io.messages_received(),
        )

        # Responses are validated after timing so decoding does not count as latency.
        for body in stream_io.responses:
            self.serializer.check_success(Response(body=body))
        return report

    def method_type(self) -> MethodType:
        return self.serializer.method_type()


@dataclass(frozen=True)
class PeerTransport:
    """A warmed-up transport and the index of the peer it talks to."""

    transport: Any
    peer_id: int


def peer_balancer(
    peers: Sequence[str], rng: Optional[random.Random] = None
) -> Callable[[int], tuple[str, int]]:
    """Round-robin over peers, starting at a random one; returns (peer, index)."""
    if not peers:
        raise ValueError("no peers to balance across")
    rng = rng if rng is not None else random.Random()
    count = len(peers)
    start = rng.randrange(count)

    def peer_for(i: int) -> tuple[str, int]:
        offset = (start + i) % count
        return peers[offset], offset

    return peer_for


def warm_transport(
    caller: BenchmarkCaller,
    connect: Callable[[str], Any],
    peer: str,
    warmup_requests: int,
) -> Any:
    """Connect to a peer and make ``warmup_requests`` calls through it."""
    transport = connect(peer)
    for _ in range(warmup_requests):
        caller.call(transport)
    return transport


def warm_transports(
    caller: BenchmarkCaller,
    n: int,
    peers: Sequence[str],
    connect: Callable[[str], Any],
    warmup_requests: int,
    rng: Optional[random.Random] = None,
) -> list[PeerTransport]:
    """Warm up ``n`` transports concurrently; any failure raises the first error."""
    peer_for = peer_balancer(peers, rng)

    def warm(i: int) -> PeerTransport:
        peer, index = peer_for(i)
        return PeerTransport(warm_transport(caller, connect, peer, warmup_requests), index)

    if n <= 0:
        return []
    with ThreadPoolExecutor(max_workers=n) as pool:
        futures = [pool.submit(warm, i) for i in range(n)]
    return [future.result() for future in futures]