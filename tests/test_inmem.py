import io
from datetime import datetime, timezone

import pytest

from objstore.bucket import ObjectNotFoundError, try_to_get_size, with_recursive_iter
from objstore.inmem import InMemBucket


class _TrickleReader:
    def __init__(self, data):
        self._buf = io.BytesIO(data)

    def read(self, size=-1):
        return self._buf.read(1)


@pytest.fixture
def bkt():
    bucket = InMemBucket()
    for name in ("dir/b", "dir/a", "dir/sub/c", "dir/aa/x", "other"):
        bucket.upload(name, io.BytesIO(name.encode()))
    return bucket


def _collect(bucket, dir, *options):
    seen = []
    bucket.iter(dir, seen.append, *options)
    return seen


def test_upload_get_roundtrip():
    bucket = InMemBucket()
    bucket.upload("obj", io.BytesIO(b"payload"))
    with bucket.get("obj") as reader:
        assert reader.read() == b"payload"
        assert try_to_get_size(reader) == len(b"payload")


def test_upload_from_reader_returning_small_chunks():
    bucket = InMemBucket()
    bucket.upload("obj", _TrickleReader(b"abcdef"))
    assert bucket.objects()["obj"] == b"abcdef"


def test_get_errors():
    bucket = InMemBucket()
    with pytest.raises(ValueError, match="object name is empty"):
        bucket.get("")
    with pytest.raises(ObjectNotFoundError) as info:
        bucket.get("missing")
    assert bucket.is_obj_not_found_err(info.value)
    assert not bucket.is_obj_not_found_err(ValueError("other"))
    assert not bucket.is_access_denied_err(info.value)


def test_get_range_variants():
    data = b"hello world"
    bucket = InMemBucket()
    bucket.upload("obj", io.BytesIO(data))

    reader = bucket.get_range("obj", 1, 3)
    assert reader.read() == data[1:4]
    assert reader.object_size() == 3

    tail = bucket.get_range("obj", 6, -1)
    assert tail.read() == data[6:]
    assert tail.object_size() == len(data[6:])

    past_end = bucket.get_range("obj", len(data) + 5, 3)
    assert past_end.read() == b""
    assert past_end.object_size() == 0

    clipped = bucket.get_range("obj", 8, 100)
    assert clipped.read() == data[8:]
    assert clipped.object_size() == len(data[8:])

    with pytest.raises(ValueError, match="length cannot be smaller or equal 0"):
        bucket.get_range("obj", 0, 0)
    with pytest.raises(ObjectNotFoundError):
        bucket.get_range("missing", 0, 1)


def test_iter_lists_files_before_directories(bkt):
    assert _collect(bkt, "dir/") == ["dir/a", "dir/b", "dir/aa/", "dir/sub/"]
    assert _collect(bkt, "") == ["other", "dir/"]


def test_iter_recursive(bkt):
    assert _collect(bkt, "dir/", with_recursive_iter) == sorted(["dir/a", "dir/b", "dir/sub/c", "dir/aa/x"])


def test_iter_skips_exact_name(bkt):
    assert _collect(bkt, "other", with_recursive_iter) == []


def test_iter_stops_on_callback_error(bkt):
    seen = []

    def callback(name):
        seen.append(name)
        raise KeyError(name)

    with pytest.raises(KeyError):
        bkt.iter("dir/", callback)
    assert seen == ["dir/a"]


def test_exists_attributes_delete():
    bucket = InMemBucket()
    before = datetime.now(timezone.utc)
    bucket.upload("obj", io.BytesIO(b"12345"))
    after = datetime.now(timezone.utc)

    assert bucket.exists("obj")
    attrs = bucket.attributes("obj")
    assert attrs.size == len(b"12345")
    assert before <= attrs.last_modified <= after

    bucket.delete("obj")
    assert not bucket.exists("obj")
    with pytest.raises(ObjectNotFoundError):
        bucket.attributes("obj")
    with pytest.raises(ObjectNotFoundError):
        bucket.delete("obj")


def test_objects_returns_copy_and_name():
    bucket = InMemBucket()
    bucket.upload("obj", io.BytesIO(b"x"))
    copy = bucket.objects()
    copy.clear()
    assert bucket.objects() == {"obj": b"x"}
    assert bucket.name() == "inmem"