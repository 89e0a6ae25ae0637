"""A bucket view that keeps every object under a fixed prefix."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from objstore.bucket import DIR_DELIM, Bucket, ObjectAttributes


def _valid_prefix(prefix: str) -> bool:
    return len(prefix.replace(DIR_DELIM, "")) > 0


class PrefixedBucket(Bucket):
    """Maps object names onto ``<prefix>/<name>`` in the wrapped bucket."""

    def __init__(self, bkt: Bucket, prefix: str):
        self._bkt = bkt
        self.prefix = prefix.strip(DIR_DELIM)

    def _with_prefix(self, name: str) -> str:
        return self.prefix + DIR_DELIM + name

    def _conditional(self, name: str) -> str:
        return self._with_prefix(name) if name else name

    def iter(self, dir: str, f: Callable[[str], Any], *args: Any) -> None:
        strip = self.prefix + DIR_DELIM
        self._bkt.iter(self._with_prefix(dir), lambda name: f(name.removeprefix(strip)), *args)

    def get(self, name: str) -> Any:
        return self._bkt.get(self._conditional(name))

    def get_range(self, name: str, off: int, length: int) -> Any:
        return self._bkt.get_range(self._conditional(name), off, length)

    def exists(self, name: str) -> bool:
        return self._bkt.exists(self._conditional(name))

    def attributes(self, name: str) -> ObjectAttributes:
        return self._bkt.attributes(self._conditional(name))

    def upload(self, name: str, r: Any) -> None:
        self._bkt.upload(self._conditional(name), r)

    def delete(self, name: str) -> None:
        self._bkt.delete(self._conditional(name))

    def is_obj_not_found_err(self, err: BaseException | None) -> bool:
        return self._bkt.is_obj_not_found_err(err)

    def is_access_denied_err(self, err: BaseException | None) -> bool:
        return self._bkt.is_access_denied_err(err)

    def close(self) -> None:
        self._bkt.close()

    def name(self) -> str:
        return self._bkt.name()


def new_prefixed_bucket(bkt: Bucket, prefix: str) -> Bucket:
    """Wrap ``bkt`` under ``prefix``, or return it unchanged if the prefix is only slashes."""
    if _valid_prefix(prefix):
        return PrefixedBucket(bkt, prefix)
    return bkt