import os
import sys
import unittest
from datetime import datetime, timedelta, timezone

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

USE_DB = os.getenv("USE_DB", "0") == "1"
DB_URL = os.getenv("LOOKUP_DB_URL") or os.getenv("DATABASE_URL")

from app.stores_db import DbLookupStore, DbTxManager, _to_iso
from row_import import import_rows
from row_mutation import create_row


class TestDbRowMapping(unittest.TestCase):
    def test_timestamps_rendered_in_utc(self) -> None:
        local = datetime(2024, 3, 1, 9, 30, 0, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual(_to_iso(local), "2024-03-01T07:30:00Z")
        self.assertEqual(_to_iso(datetime(2024, 3, 1, 9, 30, 0, tzinfo=timezone.utc)), "2024-03-01T09:30:00Z")
        self.assertIsNone(_to_iso(None))


@unittest.skipUnless(USE_DB and DB_URL, "DB store test requires USE_DB=1 and DATABASE_URL/LOOKUP_DB_URL")
class TestDbLookupStore(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.tx_mgr = DbTxManager(dsn=DB_URL)
        cls.tx_mgr.ensure_schema()
        cls.lookups = DbLookupStore()

    def setUp(self) -> None:
        tx = self.tx_mgr.begin()
        self.table = self.lookups.create_table(tx, "db_parts")
        self.name = self.lookups.create_column(tx, self.table["id"], "Name", "string", 0)
        self.qty = self.lookups.create_column(tx, self.table["id"], "Qty", "number", 1)
        tx.commit()

    def tearDown(self) -> None:
        tx = self.tx_mgr.begin()
        self.lookups.delete_table(tx, self.table["id"])
        tx.commit()

    def test_duplicate_row_reports_existing_id(self) -> None:
        values = {self.name["id"]: "bolt", self.qty["id"]: 10}
        first = create_row(self.tx_mgr, self.lookups, self.table["id"], values)
        self.assertTrue(first["ok"], first)
        second = create_row(self.tx_mgr, self.lookups, self.table["id"], {self.name["id"]: "bolt", self.qty["id"]: "10"})
        self.assertEqual(second["errors"][0]["code"], "ROW_DUPLICATE")
        self.assertEqual(second["errors"][0]["detail"]["existing_row_id"], first["row"]["id"])

    def test_bulk_import_counts(self) -> None:
        rows = [
            {"values": {self.name["id"]: "bolt", self.qty["id"]: 10}},
            {"values": {self.name["id"]: "bolt", self.qty["id"]: "10"}},
            {"values": {}},
        ]
        result = import_rows(self.tx_mgr, self.lookups, self.table["id"], rows)
        self.assertEqual((result["inserted"], result["skipped_duplicate_in_request"], result["skipped_blank"]), (1, 1, 1))
        again = import_rows(self.tx_mgr, self.lookups, self.table["id"], rows[:1])
        self.assertEqual(again["skipped_existing"], 1)


if __name__ == "__main__":
    unittest.main()
