"""A bucket kept in process memory, meant for tests."""

from __future__ import annotations

import io
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from objstore.bucket import (
    DIR_DELIM,
    Bucket,
    ObjectAttributes,
    ObjectNotFoundError,
    ObjectSizerReader,
    apply_iter_options,
)

_CHUNK = 64 * 1024


def _not_found() -> ObjectNotFoundError:
    return ObjectNotFoundError("inmem: object not found")


def _split_after(text: str) -> list[str]:
    pieces = text.split(DIR_DELIM)
    return [piece + DIR_DELIM for piece in pieces[:-1]] + [pieces[-1]]


def _reader(data: bytes) -> ObjectSizerReader:
    return ObjectSizerReader(io.BytesIO(data), lambda: len(data))


class InMemBucket(Bucket):
    """A thread-safe bucket holding immutable objects in a dictionary."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: dict[str, bytes] = {}
        self._attrs: dict[str, ObjectAttributes] = {}

    def objects(self) -> dict[str, bytes]:
        """Return a copy of the stored objects."""
        with self._lock:
            return dict(self._objects)

    def iter(self, dir: str, f: Callable[[str], Any], *args: Any) -> None:
        params = apply_iter_options(*args)
        depth = sum(1 for part in _split_after(dir) if part)

        unique: set[str] = set()
        with self._lock:
            for filename in self._objects:
                if not filename.startswith(dir) or filename == dir:
                    continue
                if params.recursive:
                    unique.add(filename)
                    continue
                unique.add("".join(_split_after(filename)[: depth + 1]))

        for key in sorted(unique, key=lambda name: (name.endswith(DIR_DELIM), name)):
            f(key)

    def _lookup(self, name: str) -> bytes:
        if name == "":
            raise ValueError("inmem: object name is empty")
        with self._lock:
            data = self._objects.get(name)
        if data is None:
            raise _not_found()
        return data

    def get(self, name: str) -> ObjectSizerReader:
        return _reader(self._lookup(name))

    def get_range(self, name: str, off: int, length: int) -> ObjectSizerReader:
        data = self._lookup(name)
        if off < 0:
            raise ValueError("offset cannot be negative")
        if len(data) < off:
            return _reader(b"")
        if length == -1:
            return _reader(data[off:])
        if length <= 0:
            raise ValueError("length cannot be smaller or equal 0")
        return _reader(data[off : off + length])

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._objects

    def attributes(self, name: str) -> ObjectAttributes:
        with self._lock:
            attrs = self._attrs.get(name)
        if attrs is None:
            raise _not_found()
        return attrs

    def upload(self, name: str, r: Any) -> None:
        with self._lock:
            chunks = []
            while True:
                chunk = r.read(_CHUNK)
                if not chunk:
                    break
                chunks.append(bytes(chunk))
            body = b"".join(chunks)
            self._objects[name] = body
            self._attrs[name] = ObjectAttributes(size=len(body), last_modified=datetime.now(timezone.utc))

    def delete(self, name: str) -> None:
        with self._lock:
            if name not in self._objects:
                raise _not_found()
            del self._objects[name]
            del self._attrs[name]

    def is_obj_not_found_err(self, err: BaseException | None) -> bool:
        seen: set[int] = set()
        while err is not None and id(err) not in seen:
            if isinstance(err, ObjectNotFoundError):
                return True
            seen.add(id(err))
            err = err.__cause__
        return False

    def is_access_denied_err(self, err: BaseException | None) -> bool:
        return False

    def close(self) -> None:
        pass

    def name(self) -> str:
        return "inmem"