"""Per-worker benchmark bookkeeping: errors, latencies and stream counts."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, TextIO

QUANTILES: tuple[float, ...] = (0.5000, 0.9000, 0.9500, 0.9900, 0.9990, 0.9995, 1.0000)

_NS_PER_SECOND = 1_000_000_000


class Statter:
    """Metrics client that keeps counters and timings in memory."""

    def __init__(self) -> None:
        self.counters: dict[str, int] = {}
        self.timers: dict[str, list[int]] = {}

    def inc(self, name: str) -> None:
        self.counters[name] = self.counters.get(name, 0) + 1

    def timing(self, name: str, duration: int) -> None:
        self.timers.setdefault(name, []).append(duration)


class NoopStatter(Statter):
    """Metrics client that discards everything."""

    def inc(self, name: str) -> None:
        return None

    def timing(self, name: str, duration: int) -> None:
        return None


@dataclass
class Output:
    """Where results, warnings and fatal messages are written."""

    out: TextIO = field(default_factory=lambda: sys.stdout)
    err: TextIO = field(default_factory=lambda: sys.stderr)

    def write(self, text: str) -> None:
        self.out.write(text)

    def warn(self, text: str) -> None:
        self.err.write(text)

    def fatal(self, text: str) -> None:
        """Report the message and stop the program."""
        self.err.write(text)
        raise SystemExit(1)


def _frac(value: int, precision: int) -> str:
    whole, frac = divmod(value, 10**precision)
    digits = f"{frac:0{precision}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def format_duration(nanoseconds: int) -> str:
    """Render a duration in nanoseconds as, for example, ``1.5ms`` or ``1h2m3s``."""
    nanoseconds = int(nanoseconds)
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    u = abs(nanoseconds)

    if u < _NS_PER_SECOND:
        if u < 1_000:
            return f"{sign}{u}ns"
        if u < 1_000_000:
            return f"{sign}{_frac(u, 3)}µs"
        return f"{sign}{_frac(u, 6)}ms"

    seconds = u // _NS_PER_SECOND
    text = _frac(u - (seconds - seconds % 60) * _NS_PER_SECOND, 9) + "s"
    minutes = seconds // 60
    if minutes:
        text = f"{minutes % 60}m{text}"
        hours = minutes // 60
        if hours:
            text = f"{hours}h{text}"
    return sign + text


def error_to_message(err: Any) -> str:
    """Collapse each run of digits in the error text into a single ``X``."""
    parts: list[str] = []
    in_digits = False
    for char in str(err):
        if "0" <= char <= "9":
            if not in_digits:
                parts.append("X")
            in_digits = True
        else:
            parts.append(char)
            in_digits = False
    return "".join(parts)


@dataclass
class BenchmarkState:
    """Results recorded by one benchmark worker; durations are in nanoseconds."""

    statter: Statter = field(default_factory=NoopStatter)
    errors: dict[str, int] = field(default_factory=dict)
    total_errors: int = 0
    total_success: int = 0
    total_requests: int = 0
    latencies: list[int] = field(default_factory=list)
    total_stream_messages_sent: int = 0
    total_stream_messages_received: int = 0

    def record_request(self) -> None:
        self.total_requests += 1

    def record_error(self, err: Any) -> None:
        if err is None:
            raise ValueError("record_error not passed error")
        self.record_request()
        msg = error_to_message(err)
        self.errors[msg] = self.errors.get(msg, 0) + 1
        self.total_errors += 1
        self.statter.inc("error")

    def record_latency(self, duration: int) -> None:
        self.record_request()
        self.latencies.append(duration)
        self.total_success += 1
        self.statter.inc("success")
        self.statter.timing("latency", duration)

    def record_stream_messages(self, sent: int, received: int) -> None:
        self.total_stream_messages_sent += sent
        self.total_stream_messages_received += received

    def merge(self, other: BenchmarkState) -> None:
        for msg, count in other.errors.items():
            self.errors[msg] = self.errors.get(msg, 0) + count
        self.latencies.extend(other.latencies)
        self.total_errors += other.total_errors
        self.total_success += other.total_success
        self.total_requests += other.total_requests
        self.total_stream_messages_received += other.total_stream_messages_received
        self.total_stream_messages_sent += other.total_stream_messages_sent

    def quantile(self, q: float) -> int:
        """Linearly interpolated quantile of the recorded latencies, in order recorded."""
        if q < 0 or q > 1:
            raise ValueError(f"got unexpected quantile: {q}, must be in range [0, 1]")

        count = len(self.latencies)
        if count == 0:
            return 0
        if count == 1:
            return self.latencies[0]

        last = count - 1
        exact = q * float(last)
        left = int(exact)
        if left >= last:
            return self.latencies[last]

        right_bias = exact - float(left)
        left_bias = 1 - right_bias
        return int(
            float(self.latencies[left]) * left_bias
            + float(self.latencies[left + 1]) * right_bias
        )

    def latencies_by_quantile(self) -> dict[float, int]:
        """Sort the latencies and map each standard quantile to its value."""
        self.latencies.sort()
        return {q: self.quantile(q) for q in QUANTILES}

    def print_errors(self, out: Output) -> None:
        if not self.errors:
            return
        out.write("Errors:\n")
        for msg in sorted(self.errors):
            out.write(f"  {self.errors[msg]:4d}: {msg}\n")
        out.write(f"Total errors: {self.total_errors}\n")
        rate = 100 * self.total_errors / self.total_requests
        out.write(f"Error rate: {rate:.4f}%\n")