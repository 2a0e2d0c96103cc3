"""Request encoding, stream handling and load benchmarking for RPC services."""

__version__ = "0.1.0"