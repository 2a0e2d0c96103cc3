[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rpcbench"
version = "0.1.0"
description = "Request encoding, stream handling and load benchmarking for RPC services"
requires-python = ">=3.10"
keywords = ["rpc", "benchmark", "load-testing", "latency", "streaming", "serialization"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
    "Topic :: Software Development :: Testing :: Traffic Generation",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["rpcbench"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
