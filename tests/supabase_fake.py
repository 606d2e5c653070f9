"""In-memory stand-in for the supabase client's table query builder, for tests."""
import re
import uuid
import copy
from datetime import datetime, timezone

UUID_TABLES = {"saved_decks"}


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def _like_to_regex(pattern):
    parts = []
    for char in pattern:
        if char == '%':
            parts.append('.*')
        elif char == '_':
            parts.append('.')
        else:
            parts.append(re.escape(char))
    return ''.join(parts)


def _column_value(row, column):
    """row[column], following a "legalities->>modern" JSON path as text"""
    if '->>' in column:
        name, key = column.split('->>', 1)
        value = (row.get(name) or {}).get(key)
        return None if value is None else str(value)
    return row.get(column)


class FakeQuery:
    def __init__(self, client, table, operation, payload=None, columns="*", count=None, on_conflict="id"):
        self.client = client
        self.table = table
        self.operation = operation
        self.payload = payload
        self.columns = columns
        self.count = count
        self.on_conflict = on_conflict
        self.filters = []
        self.ordering = []
        self.max_rows = None
        self.row_range = None

    # Filters

    def eq(self, column, value):
        self.filters.append(lambda row: _column_value(row, column) == value)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def ilike(self, column, pattern):
        regex = re.compile(_like_to_regex(pattern), re.I | re.S)
        self.filters.append(lambda row: row.get(column) is not None and regex.fullmatch(str(row[column])) is not None)
        return self

    def like(self, column, pattern):
        regex = re.compile(_like_to_regex(pattern), re.S)
        self.filters.append(lambda row: row.get(column) is not None and regex.fullmatch(str(row[column])) is not None)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def is_(self, column, value):
        if value == "null":
            self.filters.append(lambda row: row.get(column) is None)
        else:
            self.filters.append(lambda row: row.get(column) == value)
        return self

    def contains(self, column, values):
        self.filters.append(lambda row: all(v in (row.get(column) or []) for v in values))
        return self

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, n):
        self.max_rows = n
        return self

    def range(self, start, end):
        self.row_range = (start, end)
        return self

    # Execution

    def _matching(self, rows):
        return [row for row in rows if all(check(row) for check in self.filters)]

    def _project(self, row):
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        names = [name.strip() for name in self.columns.split(',')]
        return {name: copy.deepcopy(row.get(name)) for name in names}

    def execute(self):
        self.client.calls.append((self.table, self.operation, self.payload))
        if (self.table, self.operation) in self.client.fail_on:
            raise RuntimeError(f"{self.operation} on {self.table} failed")

        rows = self.client.tables.setdefault(self.table, [])

        if self.operation == "select":
            matched = self._matching(rows)
            for column, desc in reversed(self.ordering):
                matched.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)
            total = len(matched)
            if self.row_range is not None:
                matched = matched[self.row_range[0]:self.row_range[1] + 1]
            if self.max_rows is not None:
                matched = matched[:self.max_rows]
            return FakeResponse([self._project(row) for row in matched],
                                count=total if self.count else None)

        if self.operation == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.client.prepare_row(self.table, row) for row in new_rows]
            rows.extend(inserted)
            return FakeResponse(copy.deepcopy(inserted))

        if self.operation == "upsert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            written = []
            for row in new_rows:
                existing = next((r for r in rows if r.get(self.on_conflict) == row.get(self.on_conflict)), None)
                if existing is not None:
                    existing.update(copy.deepcopy(row))
                    written.append(existing)
                else:
                    prepared = self.client.prepare_row(self.table, row)
                    rows.append(prepared)
                    written.append(prepared)
            return FakeResponse(copy.deepcopy(written))

        if self.operation == "update":
            matched = self._matching(rows)
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matched))

        if self.operation == "delete":
            matched = self._matching(rows)
            self.client.tables[self.table] = [row for row in rows if row not in matched]
            return FakeResponse(copy.deepcopy(matched))

        raise ValueError(f"Unknown operation {self.operation}")


class FakeTable:
    def __init__(self, client, name):
        self.client = client
        self.name = name

    def select(self, columns="*", count=None):
        return FakeQuery(self.client, self.name, "select", columns=columns, count=count)

    def insert(self, rows):
        return FakeQuery(self.client, self.name, "insert", payload=rows)

    def upsert(self, rows, on_conflict="id"):
        return FakeQuery(self.client, self.name, "upsert", payload=rows, on_conflict=on_conflict)

    def update(self, fields):
        return FakeQuery(self.client, self.name, "update", payload=fields)

    def delete(self):
        return FakeQuery(self.client, self.name, "delete")


class FakeSupabaseClient:
    def __init__(self, tables=None):
        self.tables = {name: [dict(row) for row in rows] for name, rows in (tables or {}).items()}
        self.calls = []
        self.fail_on = set()
        self._next_id = 1

    def table(self, name):
        return FakeTable(self, name)

    def prepare_row(self, table, row):
        row = copy.deepcopy(row)
        if row.get("id") is None:
            if table in UUID_TABLES:
                row["id"] = str(uuid.uuid4())
            else:
                row["id"] = self._next_id
                self._next_id += 1
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return row

    def calls_for(self, table, operation):
        return [payload for name, op, payload in self.calls if name == table and op == operation]
