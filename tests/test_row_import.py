import unittest
import uuid

from lookup_fixtures import LookupFixture
from app.stores import MemoryLookupStore
from row_import import classify_rows, import_rows
from row_mutation import create_row


class _StaleHashLookups(MemoryLookupStore):
    """Answers hash lookups as if another writer had not committed yet."""

    def find_row_hashes(self, tx, table_id, hashes):
        return set()


class TestRowImport(unittest.TestCase):
    def setUp(self) -> None:
        self.fx = LookupFixture([("Name", "string"), ("Qty", "number")])

    def _item(self, sort_order=None, **values) -> dict:
        item = {"values": self.fx.values(**values)}
        if sort_order is not None:
            item["sort_order"] = sort_order
        return item

    def _import(self, rows: list[dict]) -> dict:
        return import_rows(self.fx.tx_mgr, self.fx.lookups, self.fx.table_id, rows)

    def _counts(self, result: dict) -> tuple:
        return (
            result["inserted"],
            result["skipped_blank"],
            result["skipped_duplicate_in_request"],
            result["skipped_existing"],
        )

    def test_equivalent_rows_in_one_batch(self) -> None:
        result = self._import([self._item(Name="bolt", Qty=10), self._item(Name="bolt", Qty="10")])
        self.assertTrue(result["ok"], result)
        self.assertEqual(self._counts(result), (1, 0, 1, 0))
        self.assertEqual(len(self.fx.rows()), 1)

    def test_reimport_counts_existing(self) -> None:
        self._import([self._item(Name="bolt", Qty=10)])
        result = self._import([self._item(Name="bolt", Qty=10)])
        self.assertEqual(self._counts(result), (0, 0, 0, 1))
        self.assertEqual(len(self.fx.rows()), 1)

    def test_blank_rows_skipped(self) -> None:
        result = self._import(
            [
                {"values": {}},
                self._item(Name=None, Qty=None),
                self._item(Qty="n/a"),
                {},
            ]
        )
        self.assertEqual(self._counts(result), (0, 4, 0, 0))
        self.assertEqual(self.fx.rows(), [])

    def test_accounting_identity(self) -> None:
        create_row(self.fx.tx_mgr, self.fx.lookups, self.fx.table_id, self.fx.values(Name="nut", Qty=5))
        batch = [
            self._item(Name="bolt", Qty=10),
            self._item(Name="bolt", Qty=10.0),
            self._item(Name="nut", Qty="5"),
            self._item(Name=None),
            self._item(Name="washer"),
            self._item(Name="washer", Qty=None),
        ]
        result = self._import(batch)
        self.assertEqual(self._counts(result), (2, 1, 2, 1))
        self.assertEqual(sum(self._counts(result)), len(batch))
        self.assertEqual(len(self.fx.rows()), 3)

    def test_first_occurrence_wins(self) -> None:
        result = self._import([self._item(sort_order=2, Name="bolt", Qty=10), self._item(sort_order=1, Name="bolt", Qty="10")])
        self.assertEqual(result["inserted"], 1)
        self.assertEqual(self.fx.rows()[0]["sort_order"], 2)

    def test_stored_values_are_normalized(self) -> None:
        self._import([self._item(Name=7, Qty=" 2.50 ")])
        row = self.fx.rows()[0]
        self.assertEqual(row["values"], self.fx.values(Name="7", Qty=2.5))

    def test_row_committed_by_another_writer_is_not_duplicated(self) -> None:
        fx = LookupFixture([("Name", "string"), ("Qty", "number")], lookups=_StaleHashLookups())
        existing = create_row(fx.tx_mgr, fx.lookups, fx.table_id, fx.values(Name="bolt", Qty=10))
        self.assertTrue(existing["ok"], existing)

        with self.assertLogs("lookup.import", level="WARNING") as logs:
            result = import_rows(fx.tx_mgr, fx.lookups, fx.table_id, [{"values": fx.values(Name="bolt", Qty="10")}])
        self.assertTrue(result["ok"], result)
        self.assertEqual(result["inserted"], 0)
        self.assertEqual(result["skipped_existing"], 0)
        self.assertEqual([r["id"] for r in fx.rows()], [existing["row"]["id"]])
        self.assertTrue(any("import_conflict_ignored" in line for line in logs.output))

    def test_missing_table(self) -> None:
        result = import_rows(self.fx.tx_mgr, self.fx.lookups, str(uuid.uuid4()), [{"values": {}}])
        self.assertFalse(result["ok"])
        self.assertEqual(result["errors"][0]["code"], "TABLE_NOT_FOUND")

    def test_classify_rows(self) -> None:
        columns = [{"id": "name", "data_type": "string"}]
        candidates, counts = classify_rows(
            "t1",
            columns,
            [{"values": {"name": "a"}}, {"values": {"name": "a"}}, {"values": {"name": None}}, "junk"],
        )
        self.assertEqual([c["values"] for c in candidates], [{"name": "a"}])
        self.assertEqual(counts, {"skipped_blank": 2, "skipped_duplicate_in_request": 1})


if __name__ == "__main__":
    unittest.main()
