[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "arpc"
version = "0.1.0"
description = "Message framing, method routing, message coders, publish/subscribe topic encoding and a splitting listener for a lightweight RPC protocol"
requires-python = ">=3.10"
dependencies = [
    "msgpack",
]
keywords = ["rpc", "networking", "pubsub", "middleware", "protocol", "framing"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["arpc"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
