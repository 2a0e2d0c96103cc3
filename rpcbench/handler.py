"""Driving streaming calls: reading request messages and handling responses."""

from __future__ import annotations

import base64
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .bench_state import Output
from .encoding import MethodType, Response


class StreamError(Exception):
    """A streaming call failed."""


@dataclass(frozen=True)
class StreamOptions:
    """Pacing of stream messages, in seconds."""

    interval: float = 0.0
    delay_close_send_stream: float = 0.0


class StreamIO(Protocol):
    def next_request(self) -> bytes: ...

    def handle_response(self, body: bytes) -> None: ...


class ClientStream(Protocol):
    def send_message(self, body: bytes) -> None: ...

    def receive_message(self) -> Any: ...

    def close(self) -> None: ...


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class StreamIOInitializer:
    """Reads request messages from a reader, recording each, and prints responses."""

    def __init__(self, out: Optional[Output] = None, serializer: Any = None,
                 stream_msg_reader: Any = None) -> None:
        self.out = out if out is not None else Output()
        self.serializer = serializer
        self.stream_msg_reader = stream_msg_reader
        self.eof_reached = False
        self.stream_requests: list[bytes] = []

    def next_request(self) -> bytes:
        """Return the next request body; raise EOFError once the reader is exhausted."""
        if self.eof_reached:
            raise EOFError("EOF")
        try:
            body = self.stream_msg_reader.next_body()
        except EOFError:
            self.eof_reached = True
            raise
        except Exception as exc:
            raise StreamError(f"Failed while reading stream input: {exc}") from exc
        self.stream_requests.append(body)
        return body

    def handle_response(self, body: bytes) -> None:
        """Decode a response and print it as indented JSON."""
        try:
            result = self.serializer.response(Response(body=body))
        except Exception as exc:
            raise StreamError(f"Failed while serializing stream response: {exc}") from exc
        try:
            text = json.dumps(result, indent=2, sort_keys=True, ensure_ascii=False,
                              default=_json_default)
        except (TypeError, ValueError) as exc:
            raise StreamError(f"Failed to convert map to JSON: {exc}\nMap: {result!r}") from exc
        self.out.write(f"{text}\n\n")

    def all_requests(self) -> list[bytes]:
        """Read the reader to its end and return every request seen so far."""
        while not self.eof_reached:
            try:
                self.next_request()
            except EOFError:
                pass
        return list(self.stream_requests)


class IntervalWaiter:
    """Keeps at least ``interval`` seconds between consecutive ``wait`` calls."""

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._last_allowed: Optional[float] = None

    def wait(self, done: Optional[threading.Event] = None) -> None:
        """Block until the interval has passed, or until ``done`` is set."""
        now = time.monotonic()
        if self._last_allowed is None or now - self._last_allowed >= self.interval:
            self._last_allowed = now
            return
        remaining = self.interval - (now - self._last_allowed)
        if done is not None:
            done.wait(remaining)
        else:
            time.sleep(remaining)
        self._last_allowed = time.monotonic()


def send_stream_message(stream: ClientStream, body: bytes) -> None:
    try:
        stream.send_message(body)
    except EOFError:
        raise
    except Exception as exc:
        raise StreamError(f"Failed while sending stream request: {exc}") from exc


def receive_stream_message(stream: ClientStream) -> bytes:
    """Receive one message body; EOFError signals the end of the stream."""
    try:
        msg = stream.receive_message()
    except EOFError:
        raise
    except Exception as exc:
        raise StreamError(f"Failed while receiving stream response: {exc}") from exc
    if hasattr(msg, "read"):
        try:
            return msg.read()
        except Exception as exc:
            raise StreamError(f"Failed while reading stream response: {exc}") from exc
    return bytes(msg)


def close_send_stream(stream: ClientStream, delay: float = 0.0,
                      done: Optional[threading.Event] = None) -> None:
    """Close the sending side, after ``delay`` seconds unless ``done`` is set first."""
    if delay:
        if done is not None:
            done.wait(delay)
        else:
            time.sleep(delay)
    try:
        stream.close()
    except Exception as exc:
        raise StreamError(f"Failed to close send stream: {exc}") from exc


def make_server_stream(stream: ClientStream, stream_io: StreamIO) -> None:
    """Send at most one request, then handle every response."""
    try:
        body = stream_io.next_request()
    except EOFError:
        body = b""
    else:
        try:
            stream_io.next_request()
        except EOFError:
            pass
        else:
            raise StreamError(
                "Request data contains more than 1 message for server-streaming RPC"
            )

    send_stream_message(stream, body)
    close_send_stream(stream)

    while True:
        try:
            response = receive_stream_message(stream)
        except EOFError:
            return
        stream_io.handle_response(response)


def make_client_stream(stream: ClientStream, stream_io: StreamIO, opts: StreamOptions,
                       done: Optional[threading.Event] = None) -> None:
    """Send every request, close, then handle the single response."""
    waiter = IntervalWaiter(opts.interval)
    while True:
        try:
            body = stream_io.next_request()
        except EOFError:
            break
        waiter.wait(done)
        try:
            send_stream_message(stream, body)
        except EOFError:
            break

    close_send_stream(stream, opts.delay_close_send_stream, done)
    stream_io.handle_response(receive_stream_message(stream))


def make_bidi_stream(stream: ClientStream, stream_io: StreamIO, opts: StreamOptions,
                     done: Optional[threading.Event] = None) -> None:
    """Send requests on a worker thread while handling responses as they arrive."""
    if done is None:
        done = threading.Event()
    waiter = IntervalWaiter(opts.interval)
    send_errors: list[Exception] = []

    def send_all() -> None:
        try:
            while True:
                try:
                    body = stream_io.next_request()
                except EOFError:
                    close_send_stream(stream, opts.delay_close_send_stream, done)
                    return
                except Exception:
                    done.set()
                    raise
                waiter.wait(done)
                send_stream_message(stream, body)
        except EOFError:
            return
        except Exception as exc:
            send_errors.append(exc)

    sender = threading.Thread(target=send_all, daemon=True)
    sender.start()

    receive_error: Optional[Exception] = None
    while True:
        try:
            body = receive_stream_message(stream)
            stream_io.handle_response(body)
        except EOFError:
            break
        except Exception as exc:
            receive_error = exc
            break

    done.set()
    sender.join()

    if send_errors:
        raise send_errors[0]
    if receive_error is not None:
        raise receive_error


def make_stream_request(stream: ClientStream, method_type: MethodType, stream_io: StreamIO,
                        opts: Optional[StreamOptions] = None) -> None:
    """Run a streaming call of the given kind on an open stream."""
    opts = opts if opts is not None else StreamOptions()
    done = threading.Event()
    try:
        if method_type is MethodType.BIDIRECTIONAL_STREAM:
            make_bidi_stream(stream, stream_io, opts, done)
        elif method_type is MethodType.CLIENT_STREAM:
            make_client_stream(stream, stream_io, opts, done)
        else:
            make_server_stream(stream, stream_io)
    finally:
        done.set()