"""
Contract tests for RecordStore implementations.

Runs against both InMemoryRecordStore and SqliteRecordStore.
"""

import logging

from newbook_cache.adapters.aes_codec import AesGcmCodec
from newbook_cache.adapters.simulator_record_store import InMemoryRecordStore
from newbook_cache.adapters.sqlite_record_store import SqliteRecordStore
from tests.contracts.record_store_contract import (
    NOW,
    SECRET,
    TODAY,
    RecordStoreContract,
    booking,
    exclusive_lock,
)


class TestInMemoryRecordStore(RecordStoreContract):

    def create_store(self, codec, clock=lambda: NOW):
        return InMemoryRecordStore(codec, clock=clock)

    def corrupt_row(self, store, booking_id):
        store.corrupt(booking_id)

    def test_isolation_between_instances(self):
        """Two in-memory instances must not share state."""
        s1 = self._store()
        s2 = self._store()
        s1.upsert(booking(1, "2026-06-01", "2026-06-05"))
        assert s2.get(1) is None


class TestSqliteRecordStore(RecordStoreContract):

    def create_store(self, codec, clock=lambda: NOW):
        return SqliteRecordStore(codec, db_path=":memory:", clock=clock)

    def corrupt_row(self, store, booking_id):
        with store._conn:
            store._conn.execute(
                "UPDATE booking_cache SET encrypted_data = ? WHERE booking_id = ?",
                ("bm90IGEgdmFsaWQgYmxvYg==", booking_id),
            )

    def test_table_created_automatically(self):
        """No manual schema migration needed."""
        store = self._store()
        assert store.get(1) is None

    def test_indexed_columns_are_derived_from_payload(self):
        store = self._store()
        store.upsert(booking(7, "2026-06-03", "2026-06-09", status="Arrived", group_id=12,
                             booking_placed="2026-05-01T08:15:00", booking_adults="2", booking_children=None))
        row = store._conn.execute("SELECT * FROM booking_cache WHERE booking_id = 7").fetchone()

        assert row["arrival_date"] == "2026-06-03"
        assert row["departure_date"] == "2026-06-09"
        assert row["booking_status"] == "arrived"
        assert row["group_id"] == "12"
        assert row["booking_placed_date"] == "2026-05-01 08:15:00"
        assert row["num_guests"] == 2
        assert row["room_name"] == "Site 0"
        assert row["cache_type"] == "hot"
        assert row["last_updated"] == "2026-06-01 12:00:00"

    def test_payload_is_not_stored_in_clear(self):
        store = self._store()
        store.upsert(booking(7, "2026-06-03", "2026-06-09", guest_email="alice@example.com"))
        blob = store._conn.execute("SELECT encrypted_data FROM booking_cache").fetchone()[0]
        assert "alice@example.com" not in blob
        assert "Martin" not in blob

    def test_past_departure_is_historical_tier(self):
        store = self._store()
        store.upsert(booking(8, "2026-05-01", "2026-05-04", status="departed"))
        row = store._conn.execute("SELECT cache_type FROM booking_cache WHERE booking_id = 8").fetchone()
        assert row["cache_type"] == "historical"

    def test_shared_file_survives_reopen(self, tmp_path):
        path = str(tmp_path / "cache.db")
        SqliteRecordStore(AesGcmCodec(SECRET), db_path=path).upsert(booking(9, "2026-06-01", "2026-06-02"))
        reopened = SqliteRecordStore(AesGcmCodec(SECRET), db_path=path)
        assert reopened.get(9)["booking_id"] == 9
        assert reopened.statistics(TODAY).db_size_mb >= 0

    # -- locked database -------------------------------------------------------

    def _locked_file_store(self, tmp_path):
        path = str(tmp_path / "locked.db")
        store = SqliteRecordStore(AesGcmCodec(SECRET), db_path=path, clock=lambda: NOW, timeout=0.05)
        store.upsert(booking(1, "2026-06-01", "2026-06-05", status="departed"))
        return store, path

    def test_reads_on_locked_database_are_misses(self, tmp_path, caplog):
        store, path = self._locked_file_store(tmp_path)

        with exclusive_lock(path), caplog.at_level(logging.ERROR):
            assert store.get(1) is None
            assert store.contains(1) is False
            assert store.range_by_stay("2026-06-01", "2026-06-05") == []
            assert store.range_by_placed_date("2026-05-01", "2026-06-01") == []
            assert store.range_by_cancelled_date("2026-05-01", "2026-06-01") == []
            assert store.statistics(TODAY).total == 0
            assert store.summary_by_date() == []

        assert any("database is locked" in r.getMessage() for r in caplog.records)
        assert store.get(1)["booking_id"] == 1

    def test_writes_and_deletes_on_locked_database_report_nothing_done(self, tmp_path, caplog):
        store, path = self._locked_file_store(tmp_path)

        with exclusive_lock(path), caplog.at_level(logging.ERROR):
            assert store.upsert(booking(2, "2026-06-01", "2026-06-05")) is False
            assert store.delete_older_than({"departed"}, TODAY.replace(year=2027), field="departure_date") == 0
            assert store.delete(1) is False
            assert store.clear_all() == 0
            assert store.reencrypt_all() == 0

        assert len([r for r in caplog.records if r.levelno == logging.ERROR]) >= 5
        assert store.contains(1) is True
        assert store.contains(2) is False
