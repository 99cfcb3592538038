[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cello"
version = "0.1.0"
description = "Building blocks of a container network agent for cloud VPCs: subnet and instance quota bookkeeping, metadata access, API error handling, event tracing, signalling and persistent storage."
requires-python = ">=3.11"
dependencies = []
keywords = ["cni", "eni", "vpc", "subnet", "kubernetes", "networking", "metadata"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cello"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"
