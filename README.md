# objstore

A small object storage toolkit. Every bucket offers the same operations,
whichever implementation sits behind it:

- reading: `iter(dir, f, *options)`, `get(name)`, `get_range(name, off, length)`,
  `exists(name)`, `attributes(name)`
- writing: `upload(name, reader)`, `delete(name)`
- `name()`, `close()`, plus `is_obj_not_found_err(err)` and `is_access_denied_err(err)`

The abstract classes `BucketReader` and `Bucket` live in `objstore.bucket`.
A bucket can be used as a context manager; leaving the block calls `close()`.

## What is in the package

- `objstore.bucket`
  - `ObjectAttributes` (size and last modification time), `IterParams`,
    `ObjectNotFoundError`.
  - Iter options: `with_recursive_iter`, and `apply_iter_options` to combine them.
  - `ObjectSizerReader` and `nop_closer_with_size`, readers that can report the
    size of the data behind them; `try_to_get_size(reader)` works on these,
    on `io.BytesIO` (unread bytes only) and on real files.
  - `upload_file`, `upload_dir` (option `with_upload_concurrency`),
    `download_file` and `download_dir` (options `with_fetch_concurrency` and
    `with_download_ignored_paths`). A failed `download_dir` removes what it
    downloaded and the destination directory. A failed `upload_dir` leaves
    cleaning up to the caller. The `logger` argument takes a
    `logging.Logger`, or `None` for the package's own logger.
- `objstore.inmem.InMemBucket`: a thread-safe bucket held in a dictionary,
  meant for tests. `objects()` returns a copy of what it holds.
- `objstore.prefixed`: `new_prefixed_bucket(bkt, prefix)` keeps every object
  under `<prefix>/`. If the prefix holds nothing but slashes, the bucket is
  returned unchanged. The class is `PrefixedBucket`.
- `objstore.metrics`: `wrap_with_metrics(bkt, registry, name)` and
  `wrap_with(bkt, metrics)` return a `MetricBucket`. It counts operations and
  failures, fetched bytes, transferred bytes and durations, and records the
  time of the last successful upload. `MetricBucket.with_expected_errs(fn)`
  stops errors that `fn` accepts from being counted as failures. Readers
  returned by `get` and `get_range` are `TimingReader`s, which record their
  metrics when closed. The module has its own `Registry`, `Counter`,
  `CounterVec`, `Histogram`, `HistogramVec` and `Gauge`.
  `Registry.gather()` returns the registered metrics in the text exposition
  format.
- `objstore.httpparse`: `parse_content_length(headers)` and
  `parse_last_modified(headers, layout)`. The layout is written against the
  reference time `Mon Jan 2 15:04:05 MST 2006`; the `RFC3339` constant is the
  default and `RFC1123` is also provided. Failures raise `HeaderParseError`.
- `objstore.durations`: `parse_duration("1h30m")` returns seconds and
  `format_duration(seconds)` goes the other way.
- `objstore.tlsconfig`: `TLSConfig` and `new_tls_config(cfg)`, which builds an
  `ssl.SSLContext`. Bad settings raise `TLSConfigError`.
- `objstore.transport`: `HTTPConfig` (with `HTTPConfig.from_dict`) and
  `default_transport(config)`, which returns a `Transport` holding the TLS
  context, proxies, connection limits and timeouts.
- `objstore.azure_config`: `parse_config(yaml_text)` returns a `Config` with
  `ReaderConfig` and `PipelineConfig`. `Config.validate()` raises `ConfigError`
  that lists every problem it finds, and `Config.container_url()` gives the
  container address.
- `objstore.errutil`: `MultiError` and `NonNilMultiError` collect several
  errors into one. `ErrorRoundTripper`, `wrap_with_err_roundtripper` and
  `is_mocked_error` provide a round tripper that always fails, for tests.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## Usage

```python
import io
import logging

from objstore.bucket import download_dir, with_fetch_concurrency
from objstore.inmem import InMemBucket
from objstore.metrics import Registry, wrap_with_metrics
from objstore.prefixed import new_prefixed_bucket

registry = Registry()
bucket = wrap_with_metrics(InMemBucket(), registry, "example")
tenant = new_prefixed_bucket(bucket, "tenant-a")

tenant.upload("dir/obj1", io.BytesIO(b"hello"))

with tenant.get("dir/obj1") as reader:
    print(reader.read())          # b'hello'

seen = []
tenant.iter("", seen.append)
print(seen)                       # ['dir/']

download_dir(logging.getLogger(__name__), tenant, "dir/", "dir/", "/tmp/out",
             with_fetch_concurrency(4))

print(registry.gather())
```

## Errors

A missing object in `InMemBucket` raises `objstore.bucket.ObjectNotFoundError`.
To check whether an error means "not found", call the bucket's own
`is_obj_not_found_err(err)`. An empty object name, a negative offset or a
`get_range` length of zero or less (other than `-1`, which reads to the end)
raises `ValueError`.

## What the package does not do

- It has no buckets that talk to a cloud storage service. The Azure module
  only parses and validates configuration, and `default_transport` only
  gathers connection settings. Neither one sends a request.
- It has no bucket backed by the local filesystem, and no factory that
  creates a bucket from a YAML file.
- It has no command-line program. It is a library.

## Tests

```
pytest
```