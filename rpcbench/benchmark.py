"""Running a benchmark: options, worker loops, result summaries and output."""

from __future__ import annotations

import json
import logging
import math
import os
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .bench_method import BenchmarkCaller, StreamCallReport, warm_transports
from .bench_state import QUANTILES, BenchmarkState, NoopStatter, Output, Statter, format_duration
from .encoding import MethodType

logger = logging.getLogger(__name__)

_NS_PER_SECOND = 1_000_000_000
_NS_PER_MS = 1_000_000


class RunLimiter(Protocol):
    def more(self) -> bool: ...

    def stop(self) -> None: ...


@dataclass
class BenchmarkOptions:
    """Benchmark settings; durations are in seconds."""

    max_requests: int = 0
    max_duration: float = 0.0
    rps: int = 0
    connections: int = 0
    concurrency: int = 1
    warmup_requests: int = 10
    num_cpus: int = 0
    per_peer_stats: bool = False
    format: str = ""

    def validate(self) -> None:
        """Raise ValueError for negative limits."""
        if self.max_duration < 0:
            raise ValueError("duration cannot be negative")
        if self.max_requests < 0:
            raise ValueError("max requests cannot be negative")

    def enabled(self) -> bool:
        """Benchmarking runs only when a duration or request limit is set."""
        return self.max_duration != 0 or self.max_requests != 0

    def num_connections(self, cpus: int) -> int:
        if self.connections > 0:
            return self.connections
        return cpus * 2

    def capped_max_requests(self) -> int:
        """Max requests, capped by RPS multiplied by the duration when both are set."""
        if self.rps > 0 and self.max_duration > 0:
            rps_max = int(float(self.rps) * self.max_duration)
            if rps_max < self.max_requests or self.max_requests == 0:
                return rps_max
        return self.max_requests

    def cpus(self) -> int:
        if self.num_cpus > 0:
            return self.num_cpus
        return os.cpu_count() or 1


@dataclass(frozen=True)
class Parameters:
    cpus: int
    connections: int
    concurrency: int
    max_requests: int
    max_duration: str
    max_rps: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "cpus": self.cpus,
            "connections": self.connections,
            "concurrency": self.concurrency,
            "maxRequests": self.max_requests,
            "maxDuration": self.max_duration,
            "maxRPS": self.max_rps,
        }


def _json_number(value: float) -> Any:
    return int(value) if float(value).is_integer() else value


@dataclass(frozen=True)
class Summary:
    elapsed_time_seconds: float
    total_requests: int
    rps: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "elapsedTimeSeconds": _json_number(self.elapsed_time_seconds),
            "totalRequests": self.total_requests,
            "rps": _json_number(self.rps),
        }


@dataclass(frozen=True)
class StreamSummary:
    total_stream_messages_sent: int
    total_stream_messages_received: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalStreamMessagesSent": self.total_stream_messages_sent,
            "totalStreamMessagesReceived": self.total_stream_messages_received,
        }


@dataclass(frozen=True)
class BenchmarkOutput:
    """Benchmark settings and results as written in JSON output."""

    parameters: Parameters
    latencies: Mapping[str, str]
    summary: Summary
    stream_summary: Optional[StreamSummary] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "benchmarkParameters": self.parameters.to_dict(),
            "latencies": {k: self.latencies[k] for k in sorted(self.latencies)},
            "summary": self.summary.to_dict(),
        }
        if self.stream_summary is not None:
            result["streamSummary"] = self.stream_summary.to_dict()
        return result


class _Run:
    """Hands out request slots until a request count, deadline or stop is reached."""

    def __init__(self, max_requests: int, rps: int, max_duration: float) -> None:
        self._max_requests = max_requests
        self._rps = rps
        self._start = time.monotonic()
        self._deadline = self._start + max_duration if max_duration > 0 else None
        self._issued = 0
        self._lock = threading.Lock()
        self._stopped = threading.Event()

    def _expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def more(self) -> bool:
        with self._lock:
            if self._stopped.is_set():
                return False
            if self._expired():
                self._stopped.set()
                return False
            if self._max_requests and self._issued >= self._max_requests:
                return False
            slot = self._start + self._issued / self._rps if self._rps > 0 else None
            self._issued += 1

        if slot is not None:
            until = slot if self._deadline is None else min(slot, self._deadline)
            delay = until - time.monotonic()
            if delay > 0:
                self._stopped.wait(delay)
            if self._stopped.is_set() or time.monotonic() < slot or self._expired():
                return False
        return True

    def stop(self) -> None:
        self._stopped.set()


class _PrefixedStatter(Statter):
    def __init__(self, base: Statter, prefix: str) -> None:
        super().__init__()
        self._base = base
        self._prefix = prefix

    def inc(self, name: str) -> None:
        self._base.inc(self._prefix + name)

    def timing(self, name: str, duration: int) -> None:
        self._base.timing(self._prefix + name, duration)


class _MultiStatter(Statter):
    def __init__(self, *statters: Statter) -> None:
        super().__init__()
        self._statters = statters

    def inc(self, name: str) -> None:
        for statter in self._statters:
            statter.inc(name)

    def timing(self, name: str, duration: int) -> None:
        for statter in self._statters:
            statter.timing(name, duration)


def print_parameters(out: Output, parameters: Parameters) -> None:
    out.write("Benchmark parameters:\n")
    out.write(f"  CPUs:            {parameters.cpus}\n")
    out.write(f"  Connections:     {parameters.connections}\n")
    out.write(f"  Concurrency:     {parameters.concurrency}\n")
    out.write(f"  Max requests:    {parameters.max_requests}\n")
    out.write(f"  Max duration:    {parameters.max_duration}\n")
    out.write(f"  Max RPS:         {parameters.max_rps}\n")


def print_latencies(out: Output, latencies: Mapping[float, int]) -> None:
    out.write("Latencies:\n")
    for q in QUANTILES:
        out.write(f"  {q:.4f}: {format_duration(latencies.get(q, 0))}\n")


def output_json(
    out: Output,
    parameters: Parameters,
    latencies: Mapping[float, int],
    summary: Summary,
    stream_summary: Optional[StreamSummary],
) -> None:
    formatted = {f"{q:.4f}": format_duration(latencies.get(q, 0)) for q in QUANTILES}
    result = BenchmarkOutput(parameters, formatted, summary, stream_summary)
    try:
        text = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        out.fatal(f"Failed to marshal benchmark output: {exc}\n")
        return
    out.write(f"{text}\n")


def output_plaintext(
    out: Output,
    latencies: Mapping[float, int],
    summary: Summary,
    stream_summary: Optional[StreamSummary],
) -> None:
    print_latencies(out, latencies)
    out.write(f"Elapsed time (seconds):         {summary.elapsed_time_seconds:.2f}\n")
    out.write(f"Total requests:                 {summary.total_requests}\n")
    out.write(f"RPS:                            {summary.rps:.2f}\n")
    if stream_summary is not None:
        out.write(
            f"Total stream messages sent:     {stream_summary.total_stream_messages_sent}\n"
        )
        out.write(
            f"Total stream messages received: {stream_summary.total_stream_messages_received}\n"
        )


def run_worker(transport: Any, caller: BenchmarkCaller, state: BenchmarkState,
               run: RunLimiter) -> None:
    """Make calls until the limiter says stop, recording each outcome."""
    while run.more():
        try:
            report = caller.call(transport)
        except Exception as exc:
            state.record_error(exc)
            logger.info("Failed while making call: %s", exc)
            continue
        state.record_latency(report.latency)
        if isinstance(report, StreamCallReport):
            state.record_stream_messages(report.messages_sent, report.messages_received)


def _round_hundredths(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100 if value >= 0 else -math.floor(-value * 100 + 0.5) / 100


def run_benchmark(
    out: Output,
    opts: BenchmarkOptions,
    caller: BenchmarkCaller,
    connect: Callable[[str], Any],
    peers: Sequence[str],
    run: Optional[RunLimiter] = None,
    statter: Optional[Statter] = None,
) -> None:
    """Warm up connections, run workers until the limits are reached, print results."""
    try:
        opts.validate()
    except ValueError as exc:
        out.fatal(f"Invalid benchmarking options: {exc}")
        return
    if not opts.enabled():
        return

    max_requests = opts.capped_max_requests()
    cpus = opts.cpus()
    num_conns = opts.num_connections(cpus)

    parameters = Parameters(
        cpus=cpus,
        connections=num_conns,
        concurrency=opts.concurrency,
        max_requests=max_requests,
        max_duration=format_duration(round(opts.max_duration * _NS_PER_SECOND)),
        max_rps=opts.rps,
    )

    format_as_json = False
    fmt = opts.format.lower()
    if fmt in ("text", ""):
        print_parameters(out, parameters)
    elif fmt == "json":
        format_as_json = True
    else:
        out.warn(
            f"Unrecognized format option {json.dumps(opts.format)}, please specify 'json' "
            "for JSON output. Printing plaintext output as default.\n\n"
        )
        print_parameters(out, parameters)

    logger.debug("Warming up %d connections.", num_conns)
    try:
        connections = warm_transports(caller, num_conns, peers, connect, opts.warmup_requests)
    except Exception as exc:
        out.fatal(f"Failed to warmup connections for benchmark: {exc}")
        return

    global_statter = statter if statter is not None else NoopStatter()
    workers: list[tuple[Any, BenchmarkState]] = []
    for conn in connections:
        conn_statter = global_statter
        if opts.per_peer_stats:
            conn_statter = _MultiStatter(
                global_statter, _PrefixedStatter(global_statter, f"peer.{conn.peer_id}.")
            )
        for _ in range(opts.concurrency):
            workers.append((conn.transport, BenchmarkState(statter=conn_statter)))

    if run is None:
        run = _Run(max_requests, opts.rps, opts.max_duration)

    logger.info("Benchmark starting with options %r.", opts)
    start = time.perf_counter_ns()
    threads = [
        threading.Thread(target=run_worker, args=(transport, caller, state, run), daemon=True)
        for transport, state in workers
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        while thread.is_alive():
            try:
                thread.join(0.1)
            except KeyboardInterrupt:
                out.write("\n!!Benchmark interrupted!!\n")
                run.stop()
    total = time.perf_counter_ns() - start

    overall = workers[0][1] if workers else BenchmarkState()
    for _, state in workers[1:]:
        overall.merge(state)

    logger.info(
        "Benchmark complete: duration %s, %d requests.",
        format_duration(total), overall.total_requests,
    )

    overall.print_errors(out)
    latencies = overall.latencies_by_quantile()

    total_seconds = total / _NS_PER_SECOND
    rps = _round_hundredths(overall.total_requests / total_seconds) if total_seconds > 0 else 0.0
    summary = Summary(
        elapsed_time_seconds=(total // _NS_PER_MS * _NS_PER_MS) / _NS_PER_SECOND,
        total_requests=overall.total_requests,
        rps=rps,
    )

    stream_summary: Optional[StreamSummary] = None
    if caller.method_type() is not MethodType.UNARY:
        stream_summary = StreamSummary(
            total_stream_messages_sent=overall.total_stream_messages_sent,
            total_stream_messages_received=overall.total_stream_messages_received,
        )

    if format_as_json:
        output_json(out, parameters, latencies, summary, stream_summary)
    else:
        output_plaintext(out, latencies, summary, stream_summary)