[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "workbench"
version = "0.1.0"
description = "Small building blocks: cancellable contexts, service lifecycles, loggers, length-prefixed framing, chunked uploads and a TCP tunnel"
requires-python = ">=3.10"
dependencies = [
    "flask",
]
keywords = [
    "context",
    "cancellation",
    "service",
    "lifecycle",
    "logging",
    "framing",
    "upload",
    "tunnel",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Topic :: System :: Logging",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
workbench-upload = "workbench.webapp:main"
workbench-version = "workbench.version:main"
workbench-relay-server = "workbench.relay_server:main"
workbench-relay-client = "workbench.relay_client:main"

[tool.hatch.build.targets.wheel]
packages = ["workbench"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
