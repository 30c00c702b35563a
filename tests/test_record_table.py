"""Tests for RecordTable."""

import pytest

from leasehold.errors import ConfigurationError, ConflictError
from leasehold.objects import RecordKey, RecordTable
from leasehold.storage import WriteMode


@pytest.fixture
def table(store, immediate_options):
    return RecordTable(store, "accounts", options=immediate_options)


@pytest.fixture
def key():
    return RecordKey("tenant-1", "user-42")


class TestRecordKey:
    def test_str(self, key):
        assert str(key) == "tenant-1/user-42"

    @pytest.mark.parametrize(
        "partition,row",
        [("", "r"), ("p", ""), ("a/b", "r"), ("p", "r#1"), ("p", "what?"), ("back\\slash", "r"), ("p", "x" * 1025)],
    )
    def test_invalid(self, partition, row):
        with pytest.raises(ConfigurationError):
            RecordKey(partition, row)

    def test_frozen(self, key):
        with pytest.raises(AttributeError):
            key.row = "other"

    def test_invalid_table_name(self, store):
        with pytest.raises(ConfigurationError):
            RecordTable(store, "a/b")


class TestWrites:
    """Plain insert-or-merge / insert-or-replace."""

    def test_blob_layout(self, table, store, key):
        table.insert_or_merge(key, {"name": "Ada"})
        assert store.list_names("tables/") == ["tables/accounts/tenant-1/user-42"]

    def test_get_missing(self, table, key):
        assert table.get_record(key) is None

    def test_insert_or_merge(self, table, key):
        table.insert_or_merge(key, {"name": "Ada", "plan": "free"})
        table.insert_or_merge(key, {"plan": "pro"})
        assert table.get_record(key) == {"name": "Ada", "plan": "pro"}

    def test_insert_or_replace(self, table, key):
        table.insert_or_replace(key, {"name": "Ada", "plan": "free"})
        table.insert_or_replace(key, {"plan": "pro"})
        assert table.get_record(key) == {"plan": "pro"}

    def test_plain_write_surfaces_conflict(self, table, store, key, monkeypatch):
        table.insert_or_merge(key, {"n": 1})
        name = table.blob_name(key)
        original_read = store.read_record

        def stale_read(record_name):
            record = original_read(record_name)
            # Concurrent writer lands right after our read
            store.write_record(record_name, {"n": 2}, WriteMode.MERGE, record.version)
            return record

        monkeypatch.setattr(store, "read_record", stale_read)
        with pytest.raises(ConflictError):
            table.insert_or_merge(key, {"n": 3})
        assert original_read(name).fields == {"n": 2}


class TestOptimisticWrites:
    def test_optimistic_merge(self, table, key):
        table.insert_or_merge(key, {"name": "Ada", "logins": 1})
        result = table.optimistic_insert_or_merge(key, lambda f: {"logins": f["logins"] + 1})
        assert result == {"logins": 2}
        assert table.get_record(key) == {"name": "Ada", "logins": 2}

    def test_optimistic_replace(self, table, key):
        table.insert_or_merge(key, {"name": "Ada", "logins": 1})
        table.optimistic_insert_or_replace(key, lambda f: {"logins": (f or {}).get("logins", 0) + 1})
        assert table.get_record(key) == {"logins": 2}

    @pytest.mark.asyncio
    async def test_async_forms(self, table, key):
        async def bump(fields):
            return {"logins": (fields or {}).get("logins", 0) + 1}

        await table.optimistic_insert_or_merge_async(key, bump)
        await table.optimistic_insert_or_replace_async(key, bump)
        assert await table.get_record_async(key) == {"logins": 2}
