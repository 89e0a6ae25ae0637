[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "objstore"
version = "0.1.0"
description = "Object storage bucket interface with in-memory, prefixed and instrumented buckets and directory transfer helpers"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["object storage", "bucket", "blob", "metrics", "azure", "configuration"]
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
    "Topic :: System :: Filesystems",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["objstore"]

[tool.pytest.ini_options]
addopts = "-ra"
