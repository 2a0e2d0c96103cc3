# rpcbench

`rpcbench` is a library for making and benchmarking RPC calls. It turns
user input into request bodies, drives unary and streaming calls over a
transport you supply, and measures how a service behaves under load:
latency quantiles, error rates and requests per second.

## Modules

- **`rpcbench.encoding`**: `Encoding.parse` reads an encoding name
  case-insensitively (`json`, `thrift`, `raw`, `proto`, or empty) and raises
  `ValueError` for anything else. `MethodType` names the kind of RPC
  (`UNARY`, `CLIENT_STREAM`, `SERVER_STREAM`, `BIDIRECTIONAL_STREAM`).
  `JSONSerializer` validates JSON input and re-emits it compactly with
  sorted keys; `RawSerializer` passes bytes through untouched. Both build a
  `Request` (method name and body) and read a `Response`. `split_method`
  splits a `package.Service/Method` name.
- **`rpcbench.inputdecoder`**: `new_decoder` takes bytes, text or a binary
  file and looks at the first byte: `{` gives a `JSONInputDecoder` for a
  stream of whitespace-separated JSON values, anything else a
  `YAMLInputDecoder` for `---`-separated YAML documents. `next_yaml_bytes`
  returns one body at a time and raises `EOFError` at the end; both
  decoders can also be iterated.
- **`rpcbench.notfound`**: `NotFound`, a `LookupError` that explains which
  service or method was missing or not given and lists the available ones
  in sorted order.
- **`rpcbench.handler`**: `make_stream_request` runs a client, server or
  bidirectional stream on an open stream object. `StreamIOInitializer`
  reads request messages from a reader, records them so they can be
  replayed later, and prints each response as indented JSON.
  `IntervalWaiter` keeps a minimum gap between stream messages, and
  `StreamOptions` sets that gap and an optional delay before closing the
  sending side. Failures raise `StreamError`.
- **`rpcbench.bench_state`**: `BenchmarkState` collects latencies (in
  nanoseconds), errors and stream message counts for one worker, merges
  with other states and computes interpolated quantiles. `Statter` keeps
  counters and timings in memory; `NoopStatter` discards them. `Output`
  writes results to stdout and warnings to stderr; its `fatal` writes the
  message and raises `SystemExit(1)`. `format_duration` renders
  nanoseconds as `1.5ms`, `2m3s` and the like.
- **`rpcbench.bench_method`**: `UnaryBenchmarkMethod` and
  `StreamBenchmarkMethod` make one call and return a `CallReport` or
  `StreamCallReport`. `warm_transports` opens `n` connections
  concurrently, round-robin across the peers starting from a random one
  (`peer_balancer`), and makes the warm-up calls on each.
- **`rpcbench.benchmark`**: `BenchmarkOptions` (durations in seconds),
  `run_worker` and `run_benchmark`, which warms up connections, runs
  `concurrency` workers per connection until the request count, the
  duration or the RPS limit is reached, and prints the result as text or
  JSON. Ctrl-C stops the run early and still prints the results.

## Transports

The package does not open network connections itself. You give
`run_benchmark` and `warm_transports` a `connect(peer)` callable that
returns a transport object:

- for unary calls, the transport has `call(request)` returning a
  `Response`;
- for streaming calls, it has `call_stream(request)` returning a stream
  with `send_message(body)`, `receive_message()` (raising `EOFError` at
  the end of the stream) and `close()`.

## Examples

Parsing an encoding name and serializing a JSON request:

```python
from rpcbench.encoding import Encoding, JSONSerializer

enc = Encoding.parse("JSON")
print(enc)                        # json

serializer = JSONSerializer("KeyValue::get")
req = serializer.request(b'{ "key": "hello" }')
print(req.body)                   # b'{"key":"hello"}'
```

Reading several request bodies from one input:

```python
import io
from rpcbench.inputdecoder import new_decoder

decoder = new_decoder(io.BytesIO(b'{"test":1} {"test":2}'))
for body in decoder:
    print(body)                   # b'{"test":1}', then b'{"test":2}'
```

Grouping similar errors: runs of digits collapse to a single `X`, so
messages that differ only in numbers are counted together:

```python
from rpcbench.bench_state import error_to_message

print(error_to_message(ValueError("failed after 810ms")))   # failed after Xms
```

Benchmarking a unary call against an in-process transport:

```python
from rpcbench.bench_method import UnaryBenchmarkMethod
from rpcbench.bench_state import Output
from rpcbench.benchmark import BenchmarkOptions, run_benchmark
from rpcbench.encoding import RawSerializer, Response


class EchoTransport:
    def call(self, request):
        return Response(body=request.body)


serializer = RawSerializer("Echo::echo")
caller = UnaryBenchmarkMethod(serializer, serializer.request(b"ping"))
opts = BenchmarkOptions(max_requests=1000, connections=4, concurrency=2)
run_benchmark(Output(), opts, caller, lambda peer: EchoTransport(), ["localhost:9000"])
```

## Benchmark output

A text report lists the benchmark parameters, any errors with the error
rate, latency quantiles (0.5, 0.9, 0.95, 0.99, 0.999, 0.9995 and 1.0),
elapsed time, total requests and RPS; streaming benchmarks also report the
number of stream messages sent and received. With `format="json"` the
figures are printed as one JSON document with `benchmarkParameters`,
`latencies`, `summary` and, for streams, `streamSummary`. Any other
format prints a warning and falls back to text.

## What it does not do

- There is no command-line program; everything is used from Python.
- There are no network transports (HTTP, gRPC or others); you supply them.
- Only the JSON and raw serializers are included. `Encoding` knows the
  names `thrift` and `proto`, but there is no Thrift or Protobuf
  serializer, no Thrift IDL parsing and no health-check requests.
- Metrics stay in memory (`Statter`); nothing is sent to a metrics server.

## Requirements

Python 3.10 or later and PyYAML.