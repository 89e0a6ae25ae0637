"""Bucket interfaces, readers that know their size, and directory transfer helpers."""

from __future__ import annotations

import io
import logging
import os
import posixpath
import shutil
import stat
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any

DIR_DELIM = "/"

_log = logging.getLogger("objstore")


class ObjectNotFoundError(LookupError):
    """The requested object does not exist in the bucket."""


@dataclass(frozen=True)
class ObjectAttributes:
    """Size in bytes and last modification time of an object."""

    size: int
    last_modified: datetime


@dataclass
class IterParams:
    """Parameters of an ``iter`` call, filled in by iter options."""

    recursive: bool = False


IterOption = Callable[[IterParams], None]


class BucketReader(ABC):
    """Read access to an object storage bucket."""

    @abstractmethod
    def iter(self, dir: str, f: Callable[[str], Any], *args: IterOption) -> None:
        """Call ``f`` with the full name of each entry in ``dir``, in sorted order.

        ``args`` are iter options such as :func:`with_recursive_iter`.
        An exception raised by ``f`` stops the iteration and propagates.
        """

    @abstractmethod
    def get(self, name: str) -> Any:
        """Return a reader for the named object."""

    @abstractmethod
    def get_range(self, name: str, off: int, length: int) -> Any:
        """Return a reader for ``length`` bytes of the object from ``off``; -1 reads to the end."""

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Tell whether the named object exists."""

    @abstractmethod
    def is_obj_not_found_err(self, err: BaseException | None) -> bool:
        """Tell whether ``err`` means that the object was not found."""

    @abstractmethod
    def is_access_denied_err(self, err: BaseException | None) -> bool:
        """Tell whether ``err`` means that access to the object was denied."""

    @abstractmethod
    def attributes(self, name: str) -> ObjectAttributes:
        """Return the attributes of the named object."""


class Bucket(BucketReader):
    """Read and write access to an object storage bucket."""

    @abstractmethod
    def upload(self, name: str, r: Any) -> None:
        """Store everything read from ``r`` as the named object."""

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove the named object; raise if it does not exist."""

    @abstractmethod
    def name(self) -> str:
        """Return the name of the bucket."""

    @abstractmethod
    def close(self) -> None:
        """Release resources held by the bucket."""

    def __enter__(self) -> Bucket:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class ObjectSizerReader:
    """A readable object that can also report the size of the object behind it."""

    def __init__(self, reader: Any, size: Callable[[], int] | None = None):
        self.reader = reader
        self.size_func = size

    def read(self, size: int = -1) -> bytes:
        return self.reader.read(size)

    def readable(self) -> bool:
        return True

    def close(self) -> None:
        closer = getattr(self.reader, "close", None)
        if callable(closer):
            closer()

    def object_size(self) -> int:
        """Return the object size in bytes, or raise ValueError if it is not known."""
        if self.size_func is None:
            raise ValueError("unknown size")
        return self.size_func()

    def __enter__(self) -> ObjectSizerReader:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class _NopCloserWithSize:
    """Reader whose close leaves the wrapped reader open and only records the call."""

    def __init__(self, reader: Any):
        self.reader = reader
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        return self.reader.read(size)

    def readable(self) -> bool:
        return True

    def close(self) -> None:
        self.closed = True

    def object_size(self) -> int:
        return try_to_get_size(self.reader)

    def __enter__(self) -> _NopCloserWithSize:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def with_recursive_iter(params: IterParams) -> None:
    """Iter option that lists every object below the directory."""
    params.recursive = True


def apply_iter_options(*args: IterOption) -> IterParams:
    """Build iter parameters from iter options."""
    params = IterParams()
    for option in args:
        option(params)
    return params


@dataclass
class _DownloadParams:
    concurrency: int = 1
    ignored_paths: tuple[str, ...] = field(default_factory=tuple)


@dataclass
class _UploadParams:
    concurrency: int = 1


def with_download_ignored_paths(*args: str) -> Callable[[_DownloadParams], None]:
    """Download option naming paths, relative to the source, that are not downloaded."""
    paths = tuple(args)

    def option(params: _DownloadParams) -> None:
        params.ignored_paths = paths

    return option


def with_fetch_concurrency(concurrency: int) -> Callable[[_DownloadParams], None]:
    """Download option setting how many objects are fetched at once."""

    def option(params: _DownloadParams) -> None:
        params.concurrency = concurrency

    return option


def with_upload_concurrency(concurrency: int) -> Callable[[_UploadParams], None]:
    """Upload option setting how many files are uploaded at once."""

    def option(params: _UploadParams) -> None:
        params.concurrency = concurrency

    return option


def _apply(params: Any, options: Iterable[Callable[[Any], None]]) -> Any:
    for option in options:
        option(params)
    return params


def try_to_get_size(r: Any) -> int:
    """Return the size of the data behind a reader, best called before reading.

    In-memory buffers report only their unread bytes; files report their whole size.
    """
    sizer = getattr(r, "object_size", None)
    if callable(sizer):
        return sizer()
    if isinstance(r, io.BytesIO):
        with r.getbuffer() as view:
            return max(view.nbytes - r.tell(), 0)
    fileno = getattr(r, "fileno", None)
    if callable(fileno):
        try:
            descriptor = fileno()
        except io.UnsupportedOperation:
            pass
        else:
            return os.fstat(descriptor).st_size
    raise TypeError(f"unsupported type of reader: {type(r).__name__}")


def nop_closer_with_size(r: Any) -> _NopCloserWithSize:
    """Wrap ``r`` in a reader whose close does not close ``r`` and which reports its size."""
    return _NopCloserWithSize(r)


class _TaskGroup:
    """Runs tasks on a bounded pool; ``wait`` raises the first error."""

    def __init__(self, limit: int):
        self._pool = ThreadPoolExecutor(max_workers=limit if limit > 0 else None)
        self._futures: list[Future] = []
        self._lock = threading.Lock()

    def go(self, fn: Callable[[], Any]) -> None:
        future = self._pool.submit(fn)
        with self._lock:
            self._futures.append(future)

    def wait(self) -> None:
        with self._lock:
            futures = list(self._futures)
        for future in as_completed(futures):
            exc = future.exception()
            if exc is not None:
                for other in futures:
                    other.cancel()
                raise exc

    def __enter__(self) -> _TaskGroup:
        return self

    def __exit__(self, exc_type: Any, *rest: Any) -> None:
        self._pool.shutdown(wait=True, cancel_futures=exc_type is not None)


def _close_logged(logger: logging.Logger, closer: Callable[[], Any], message: str) -> None:
    try:
        closer()
    except Exception as exc:  # noqa: BLE001 - close failures are only reported
        logger.warning("detected close error: %s: %s", message, exc)


def _path_join(*parts: str) -> str:
    joined = DIR_DELIM.join(part for part in parts if part)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = DIR_DELIM + cleaned.lstrip(DIR_DELIM)
    return cleaned


def _base(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip(DIR_DELIM)
    if not stripped:
        return DIR_DELIM
    return stripped.rsplit(DIR_DELIM, 1)[-1]


def _remove_all(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def upload_file(logger: logging.Logger | None, bkt: Bucket, src: str, dst: str) -> None:
    """Upload the local file ``src`` to the bucket as ``dst``."""
    logger = logger or _log
    reader = open(os.path.normpath(src), "rb")
    try:
        bkt.upload(dst, reader)
    finally:
        _close_logged(logger, reader.close, f"close file {src}")
    logger.debug("uploaded file from=%s dst=%s bucket=%s", src, dst, bkt.name())


def upload_dir(logger: logging.Logger | None, bkt: Bucket, srcdir: str, dstdir: str, *args: Any) -> None:
    """Upload every file below ``srcdir`` into the bucket directory ``dstdir``.

    Cleaning up a partial upload after a failure is left to the caller.
    """
    logger = logger or _log
    opts = _apply(_UploadParams(), args)
    if not stat.S_ISDIR(os.stat(srcdir).st_mode):
        raise NotADirectoryError(f"{srcdir} is not a directory")

    walk_errors: list[OSError] = []
    with _TaskGroup(opts.concurrency) as group:
        for root, dirs, files in os.walk(srcdir, onerror=walk_errors.append):
            dirs.sort()
            for filename in sorted(files):
                src = os.path.join(root, filename)
                rel = os.path.relpath(src, srcdir).replace(os.sep, DIR_DELIM)
                group.go(partial(upload_file, logger, bkt, src, _path_join(dstdir, rel)))
        group.wait()
    if walk_errors:
        raise walk_errors[0]


def download_file(logger: logging.Logger | None, bkt: BucketReader, src: str, dst: str) -> None:
    """Download the object ``src`` to ``dst``, which may be an existing directory.

    An existing file is overwritten; a partially written file is removed on failure.
    """
    logger = logger or _log
    try:
        if stat.S_ISDIR(os.stat(dst).st_mode):
            dst = os.path.join(dst, _base(src))
    except FileNotFoundError:
        pass

    reader = bkt.get(src)
    try:
        out = open(dst, "wb")
        failed = True
        try:
            shutil.copyfileobj(reader, out)
            failed = False
        finally:
            _close_logged(logger, out.close, "close block's output file")
            if failed:
                try:
                    os.remove(dst)
                except OSError as rerr:
                    logger.warning("failed to remove partially downloaded file %s: %s", dst, rerr)
    finally:
        _close_logged(logger, reader.close, "close block's file reader")


def download_dir(
    logger: logging.Logger | None,
    bkt: BucketReader,
    original_src: str,
    src: str,
    dst: str,
    *args: Any,
) -> None:
    """Download every object below ``src`` into the local directory ``dst``.

    On failure everything downloaded so far, and ``dst`` itself, is removed.
    """
    logger = logger or _log
    os.makedirs(dst, mode=0o750, exist_ok=True)
    opts = _apply(_DownloadParams(), args)

    downloaded: list[str] = []
    lock = threading.Lock()

    def fetch(name: str) -> None:
        local = os.path.join(dst, _base(name))
        if name.endswith(DIR_DELIM):
            download_dir(logger, bkt, original_src, name, local, *args)
        else:
            if name.removeprefix(original_src + DIR_DELIM) in opts.ignored_paths:
                logger.debug("not downloading again because a provided path matches this one: %s", name)
                return
            download_file(logger, bkt, name, local)
        with lock:
            downloaded.append(local)

    try:
        with _TaskGroup(opts.concurrency) as group:
            bkt.iter(src, lambda name: group.go(partial(fetch, name)))
            group.wait()
    except BaseException:
        downloaded.append(dst)
        for path in downloaded:
            try:
                _remove_all(path)
            except OSError as rerr:
                logger.warning("failed to remove file on partial dir download error %s: %s", path, rerr)
        raise