import pytest

from rpcbench.encoding import (
    Encoding,
    JSONSerializer,
    MethodType,
    RawSerializer,
    Request,
    Response,
    split_method,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("", Encoding.UNSPECIFIED),
        ("json", Encoding.JSON),
        ("Thrift", Encoding.THRIFT),
        ("RAW", Encoding.RAW),
        ("proto", Encoding.PROTOBUF),
    ],
)
def test_encoding_parse(text, expected):
    parsed = Encoding.parse(text)
    assert parsed is expected
    assert str(parsed) == expected.value


def test_encoding_parse_bytes():
    assert Encoding.parse(b"JSON") is Encoding.JSON


def test_encoding_parse_unknown():
    with pytest.raises(ValueError) as info:
        Encoding.parse("unknown")
    assert str(info.value) == 'unknown encoding: "unknown"'


def test_raw_encoding():
    serializer = RawSerializer("method")
    assert serializer.encoding() is Encoding.RAW
    assert serializer.method_type() is MethodType.UNARY

    got = serializer.request(b"asd")
    assert got == Request(method="method", body=b"asd")

    assert serializer.response(Response(body=b"123")) == b"123"
    assert serializer.check_success(None) is None


def test_json_serializer_metadata():
    serializer = JSONSerializer("method")
    assert serializer.encoding() is Encoding.JSON
    assert serializer.method_type() is MethodType.UNARY


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"{}", b"{}"),
        (b'{\n\t\t\t\t"key": 123\n\t\t\t}', b'{"key":123}'),
        (b'{"b": 1, "a": [1, 2]}', b'{"a":[1,2],"b":1}'),
    ],
)
def test_json_request(data, expected):
    got = JSONSerializer("method").request(data)
    assert got == Request(method="method", body=expected)


def test_json_request_invalid():
    with pytest.raises(ValueError, match="failed to parse JSON"):
        JSONSerializer("method").request(b"{")


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"{}", {}),
        (b'{\n\t\t\t\t"key": 123\n\t\t\t}', {"key": 123}),
        (b"1", 1),
        (b'"hello world"', "hello world"),
    ],
)
def test_json_response(data, expected):
    serializer = JSONSerializer("method")
    response = Response(body=data)
    assert serializer.response(response) == expected
    assert serializer.check_success(response) is None


def test_json_response_invalid():
    serializer = JSONSerializer("method")
    response = Response(body=b"{")
    with pytest.raises(ValueError, match="failed to parse JSON"):
        serializer.response(response)
    with pytest.raises(ValueError, match="failed to parse JSON"):
        serializer.check_success(response)


@pytest.mark.parametrize(
    "full, expected",
    [
        ("Bar/Baz", ("Bar", "Baz")),
        ("Bar", ("Bar", "")),
        ("pkg.Service/Method", ("pkg.Service", "Method")),
    ],
)
def test_split_method(full, expected):
    assert split_method(full) == expected


def test_split_method_invalid():
    with pytest.raises(ValueError) as info:
        split_method("Bar/Baz/Foo")
    assert str(info.value) == (
        'invalid proto method "Bar/Baz/Foo", expected form package.Service/Method'
    )