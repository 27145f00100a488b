import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.stores import InMemoryTxManager, MemoryLookupStore


class LookupFixture:
    """Memory-backed table with named columns for engine tests."""

    def __init__(self, columns: list[tuple[str, str]], name: str = "Parts", lookups: MemoryLookupStore | None = None) -> None:
        self.tx_mgr = InMemoryTxManager()
        self.lookups = lookups if lookups is not None else MemoryLookupStore()
        tx = self.tx_mgr.begin()
        self.table = self.lookups.create_table(tx, name)
        self.table_id = self.table["id"]
        self.columns = {}
        for idx, (col_name, data_type) in enumerate(columns):
            self.columns[col_name] = self.lookups.create_column(tx, self.table_id, col_name, data_type, idx)
        tx.commit()

    def col(self, name: str) -> str:
        return self.columns[name]["id"]

    def values(self, **by_name) -> dict:
        return {self.col(name): value for name, value in by_name.items()}

    def rows(self) -> list[dict]:
        tx = self.tx_mgr.begin()
        try:
            return self.lookups.list_rows(tx, self.table_id)
        finally:
            tx.commit()

    def row(self, row_id: str) -> dict | None:
        tx = self.tx_mgr.begin()
        try:
            return self.lookups.get_row(tx, row_id)
        finally:
            tx.commit()

    def current_columns(self) -> list[dict]:
        tx = self.tx_mgr.begin()
        try:
            return self.lookups.list_columns(tx, self.table_id)
        finally:
            tx.commit()
