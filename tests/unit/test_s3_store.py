from __future__ import annotations

import importlib

import pytest
from botocore.exceptions import ClientError
from cryptography.fernet import Fernet

from state.models import Options
from state.s3_store import OptimisticLockError, S3OptionStore
from stucky.store import OPTION_KEY, StickyStore


FERNET_KEY = Fernet.generate_key()


class _FakeBody:
    def __init__(self, data: bytes) -> None:
        self._data = data

    def read(self) -> bytes:
        return self._data


class _FakeS3:
    def __init__(self) -> None:
        self._store = {}  # (bucket, key) -> {Body: bytes, ETag: str}
        self._version = 0
        self.fail_copy_with = None
        self.fail_get_with = None

    def _etag(self) -> str:
        self._version += 1
        return f'"fake-{self._version}"'

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, ContentType: str):  # noqa: ARG002
        etag = self._etag()
        self._store[(Bucket, Key)] = {"Body": Body, "ETag": etag}
        return {"ETag": etag}

    def get_object(self, *, Bucket: str, Key: str):
        if self.fail_get_with:
            raise ClientError({"Error": {"Code": self.fail_get_with}}, "GetObject")
        item = self._store.get((Bucket, Key))
        if not item:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": _FakeBody(item["Body"]), "ETag": item["ETag"]}

    def copy_object(self, *, Bucket: str, Key: str, CopySource, IfMatch=None, MetadataDirective=None):  # noqa: ARG002
        if self.fail_copy_with:
            raise ClientError({"Error": {"Code": self.fail_copy_with}}, "CopyObject")
        dest_item = self._store.get((Bucket, Key))
        if IfMatch is not None and (not dest_item or dest_item.get("ETag") != IfMatch):
            raise ClientError({"Error": {"Code": "PreconditionFailed"}}, "CopyObject")

        src_item = self._store.get((CopySource["Bucket"], CopySource["Key"]))
        if not src_item:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "CopyObject")

        etag = self._etag()
        self._store[(Bucket, Key)] = {"Body": src_item["Body"], "ETag": etag}
        return {"ETag": etag}

    def delete_object(self, *, Bucket: str, Key: str):
        self._store.pop((Bucket, Key), None)
        return {}

    def keys(self):
        return sorted(k for _, k in self._store)


def _store(s3: _FakeS3) -> S3OptionStore:
    return S3OptionStore(s3=s3, bucket="b", key="k", fernet_key=FERNET_KEY)


def test_read_missing_returns_empty_options():
    options, etag = _store(_FakeS3()).read()
    assert etag is None
    assert options.values == {}


def test_write_and_read_roundtrip_is_encrypted():
    s3 = _FakeS3()
    store = _store(s3)

    src = Options(values={OPTION_KEY: [42, 7], "stucky_poller_offset": 10})
    etag = store.write(src)

    raw = s3.get_object(Bucket="b", Key="k")["Body"].read()
    assert b"stucky_posts" not in raw

    dst, read_etag = store.read()
    assert read_etag == etag
    assert dst == src


def test_read_raises_value_error_on_bad_token():
    s3 = _FakeS3()
    s3.put_object(Bucket="b", Key="k", Body=b"garbage", ContentType="application/octet-stream")

    with pytest.raises(ValueError):
        _store(s3).read()


def test_get_treats_unreadable_document_as_empty():
    s3 = _FakeS3()
    s3.put_object(Bucket="b", Key="k", Body=b"garbage", ContentType="application/octet-stream")

    assert _store(s3).get(OPTION_KEY) is None


def test_set_never_overwrites_document_under_another_key():
    s3 = _FakeS3()
    host = _store(s3)
    host.write(Options(values={"blogname": "Site", "stucky_poller_offset": 99}))

    rotated = S3OptionStore(s3=s3, bucket="b", key="k", fernet_key=Fernet.generate_key())
    stickies = StickyStore(rotated)

    assert stickies.stick(5) is False
    assert stickies.is_sticky(5) is False

    options, _ = host.read()
    assert options.values == {"blogname": "Site", "stucky_poller_offset": 99}


def test_s3_read_errors_report_false_and_read_as_empty():
    s3 = _FakeS3()
    store = _store(s3)
    store.set(OPTION_KEY, [1])

    s3.fail_get_with = "AccessDenied"
    assert store.get(OPTION_KEY) is None
    assert store.set(OPTION_KEY, [1, 2]) is False
    assert StickyStore(store).unstick(1) is False

    s3.fail_get_with = None
    assert store.get(OPTION_KEY) == [1]


def test_from_env_missing_vars_raises(monkeypatch):
    for name in ("STUCKY_STATE_BUCKET", "STUCKY_STATE_KEY", "STUCKY_FERNET_KEY"):
        monkeypatch.delenv(name, raising=False)

    mod = importlib.import_module("state.s3_store")
    with pytest.raises(RuntimeError):
        mod.S3OptionStore.from_env()


def test_write_with_stale_etag_raises():
    s3 = _FakeS3()
    store1 = _store(s3)
    store2 = _store(s3)

    etag1 = store1.write(Options(values={"a": 1}))
    etag2 = store1.write(Options(values={"a": 2}), if_match=etag1)
    assert etag2 != etag1

    with pytest.raises(OptimisticLockError):
        store2.write(Options(values={"a": 3}), if_match=etag1)
    # Temp objects are cleaned up
    assert s3.keys() == ["k"]


def test_set_reports_change_and_no_op():
    store = _store(_FakeS3())

    assert store.set(OPTION_KEY, [1]) is True
    assert store.set(OPTION_KEY, [1]) is False
    assert store.set(OPTION_KEY, [1, 2]) is True
    assert store.get(OPTION_KEY) == [1, 2]


def test_set_preserves_other_options():
    store = _store(_FakeS3())
    store.set("other", "x")
    store.set(OPTION_KEY, [5])

    options, _ = store.read()
    assert options.values == {"other": "x", OPTION_KEY: [5]}


def test_set_reports_false_when_write_fails():
    s3 = _FakeS3()
    store = _store(s3)
    store.set(OPTION_KEY, [1])

    s3.fail_copy_with = "PreconditionFailed"
    assert store.set(OPTION_KEY, [1, 2]) is False

    s3.fail_copy_with = "AccessDenied"
    assert store.set(OPTION_KEY, [1, 2]) is False

    s3.fail_copy_with = None
    assert store.get(OPTION_KEY) == [1]


def test_sticky_store_over_s3_options():
    stickies = StickyStore(_store(_FakeS3()))

    assert stickies.stick(42) is True
    assert stickies.stick(42) is False
    assert stickies.stick(7) is True
    assert stickies.unstick(42) is True
    assert stickies.get_stickies() == [7]
    assert stickies.is_sticky(7) is True
