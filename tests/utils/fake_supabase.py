"""In-memory stand-in for the Supabase query builder used by the services."""

import copy
from typing import Any, Optional


class FakeResult:
    def __init__(self, data: list[dict]):
        self.data = data


class FakeQuery:
    """Chainable query mirroring the subset of postgrest calls the services make."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.operation = "select"
        self.columns: Optional[list[str]] = None
        self.payload: Any = None
        self.filters: list = []
        self.ordering: Optional[tuple[str, bool]] = None
        self.row_limit: Optional[int] = None

    # Operations
    def select(self, columns: str = "*"):
        self.operation = "select"
        if columns.strip() != "*":
            self.columns = [c.strip() for c in columns.split(",")]
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload: dict):
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # Filters
    def eq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def contains(self, column: str, values):
        self.filters.append(lambda row: all(v in (row.get(column) or []) for v in values))
        return self

    def is_(self, column: str, value):
        expected = None if value == "null" else value
        self.filters.append(lambda row: row.get(column) is expected)
        return self

    def order(self, column: str, desc: bool = False):
        self.ordering = (column, desc)
        return self

    def limit(self, count: int):
        self.row_limit = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self.filters)

    def execute(self) -> FakeResult:
        self.db.calls.append((self.table_name, self.operation))
        failure = self.db.failures.pop((self.table_name, self.operation), None)
        if failure is not None:
            raise failure

        rows = self.db.tables.setdefault(self.table_name, [])

        if self.operation == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [copy.deepcopy(r) for r in new_rows]
            rows.extend(inserted)
            return FakeResult(copy.deepcopy(inserted))

        if self.operation == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(row))
            return FakeResult(updated)

        if self.operation == "delete":
            removed = [r for r in rows if self._matches(r)]
            self.db.tables[self.table_name] = [r for r in rows if not self._matches(r)]
            return FakeResult(copy.deepcopy(removed))

        selected = [copy.deepcopy(r) for r in rows if self._matches(r)]
        if self.ordering:
            column, desc = self.ordering
            selected.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self.row_limit is not None:
            selected = selected[:self.row_limit]
        if self.columns:
            selected = [{c: r.get(c) for c in self.columns} for r in selected]
        return FakeResult(selected)


class FakeSupabase:
    """Holds table rows, records calls, and can fail chosen operations once."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], Exception] = {}

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail_next(self, table: str, operation: str, error: Optional[Exception] = None) -> None:
        self.failures[(table, operation)] = error or RuntimeError(f"{table} {operation} unavailable")

    def rows(self, table: str) -> list[dict]:
        return self.tables.get(table, [])

    def row(self, table: str, row_id: str) -> Optional[dict]:
        return next((r for r in self.rows(table) if r.get("id") == row_id), None)

    def seed(self, table: str, *rows: dict) -> None:
        self.tables.setdefault(table, []).extend(copy.deepcopy(list(rows)))
