import io

import pytest

from rpcbench.bench_state import (
    QUANTILES,
    BenchmarkState,
    NoopStatter,
    Output,
    Statter,
    error_to_message,
    format_duration,
)

US = 1_000
MS = 1_000_000

EXPECTED_LATENCIES = {
    0.5: "5ms",
    0.9: "9ms",
    0.95: "9.5ms",
    0.99: "9.9ms",
    0.999: "9.99ms",
    0.9995: "9.995ms",
    1.0: "10ms",
}


def _output():
    out, err = io.StringIO(), io.StringIO()
    return out, err, Output(out=out, err=err)


def test_errors_record_and_merge():
    stats1 = Statter()
    state1 = BenchmarkState(statter=stats1)
    state2 = BenchmarkState(statter=NoopStatter())

    for i, ms in enumerate([91, 9, 80, 800, 810, 100, 1020]):
        err = RuntimeError(f"failed after {ms}ms")
        (state1 if i % 2 == 0 else state2).record_error(err)

    with pytest.raises(ValueError):
        state1.record_error(None)

    assert state1.total_errors == 4
    assert state1.total_success == 0
    assert state1.total_requests == 4

    state1.merge(state2)
    assert state1.total_errors == 7
    assert state1.total_success == 0
    assert state1.total_requests == 7

    buf, _, out = _output()
    state1.print_errors(out)
    text = buf.getvalue()
    assert "   7: failed after Xms" in text
    assert "Total errors: 7" in text
    assert "Error rate: 100.0000%" in text
    assert stats1.counters == {"error": 4}


def test_no_errors_prints_nothing():
    state = BenchmarkState(statter=NoopStatter())
    buf, _, out = _output()
    state.print_errors(out)
    assert buf.getvalue() == ""


def test_latencies():
    stats = Statter()
    state = BenchmarkState(statter=stats)
    latencies = [i * US for i in range(10001)]
    for latency in latencies:
        state.record_latency(latency)

    assert state.total_errors == 0
    assert state.total_success == 10001
    assert state.total_requests == 10001

    values = state.latencies_by_quantile()
    assert set(values) == set(QUANTILES)
    assert {q: format_duration(v) for q, v in values.items()} == EXPECTED_LATENCIES
    assert stats.counters == {"success": len(latencies)}
    assert stats.timers == {"latency": latencies}


def test_merge_latencies():
    state1 = BenchmarkState()
    state2 = BenchmarkState()
    for i in range(10001):
        (state1 if i % 2 == 0 else state2).record_latency(i * US)

    assert state1.total_errors == 0
    assert state1.total_success == 5001
    assert state1.total_requests == 5001

    state1.merge(state2)
    assert state1.total_errors == 0
    assert state1.total_success == 10001
    assert state1.total_requests == 10001

    values = state1.latencies_by_quantile()
    assert {q: format_duration(v) for q, v in values.items()} == EXPECTED_LATENCIES


def test_merge_stream_messages():
    state1 = BenchmarkState()
    state2 = BenchmarkState()
    state1.record_stream_messages(2, 3)
    state2.record_stream_messages(5, 7)
    state1.merge(state2)
    assert state1.total_stream_messages_sent == 7
    assert state1.total_stream_messages_received == 10


@pytest.mark.parametrize(
    "message, want",
    [
        ("no digits", "no digits"),
        ("has 1 digit", "has X digit"),
        ("has two 22 digits", "has two X digits"),
        ("has lots 12345 digits", "has lots X digits"),
        ("has an ip 10.2.40.5", "has an ip X.X.X.X"),
    ],
)
def test_error_to_message(message, want):
    assert error_to_message(RuntimeError(message)) == want


@pytest.mark.parametrize("q", [-0.1, 1.0000001, 10])
def test_quantile_out_of_range(q):
    with pytest.raises(ValueError):
        BenchmarkState().quantile(q)


SEQ10 = list(range(0, 101, 10))


@pytest.mark.parametrize(
    "latencies, q, want",
    [
        ([], 0.0, 0),
        ([], 0.5, 0),
        ([], 1.0, 0),
        ([1], 0.0, 1),
        ([1], 0.5, 1),
        ([1], 1.0, 1),
        (SEQ10, 0.0, 0),
        (SEQ10, 0.5, 50),
        (SEQ10, 1.0, 100),
        (SEQ10, 0.2, 20),
        (SEQ10, 0.3, 30),
        (SEQ10, 0.22, 22),
        (SEQ10, 0.25, 25),
        (SEQ10, 0.29, 29),
    ],
)
def test_quantile(latencies, q, want):
    state = BenchmarkState()
    for d in latencies:
        state.record_latency(d)
    assert state.quantile(q) == want


@pytest.mark.parametrize(
    "ns, want",
    [
        (0, "0s"),
        (999, "999ns"),
        (1500, "1.5µs"),
        (5 * MS, "5ms"),
        (9_995_000, "9.995ms"),
        (1_500_000_000, "1.5s"),
        (90_000_000_000, "1m30s"),
        (3_600_000_000_000, "1h0m0s"),
        (-5 * MS, "-5ms"),
    ],
)
def test_format_duration(ns, want):
    assert format_duration(ns) == want


def test_output_fatal_and_warn():
    buf, err, out = _output()
    out.write("hello\n")
    out.warn("careful\n")
    with pytest.raises(SystemExit):
        out.fatal("boom\n")
    assert buf.getvalue() == "hello\n"
    assert err.getvalue() == "careful\nboom\n"