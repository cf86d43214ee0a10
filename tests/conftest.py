import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

# Modules live at the repo root
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep log files out of the working tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="dashboard-logs-"))


class FakeResponse:
    def __init__(self, data=None, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Records a supabase-py style query chain and runs it over in-memory rows."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.filters = []
        self.columns = None
        self.count_mode = None
        self.update_values = None
        self.order_by = None
        self.limit_n = None

    def select(self, *columns, count=None, **kwargs):
        self.columns = columns
        self.count_mode = count
        return self

    def update(self, values):
        self.update_values = values
        return self

    def eq(self, column, value):
        self.filters.append(("eq", column, value))
        return self

    def gte(self, column, value):
        self.filters.append(("gte", column, value))
        return self

    def lte(self, column, value):
        self.filters.append(("lte", column, value))
        return self

    def in_(self, column, values):
        self.filters.append(("in", column, list(values)))
        return self

    def is_(self, column, value):
        return self

    @property
    def not_(self):
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def filter_value(self, op, column):
        for f_op, f_column, value in self.filters:
            if f_op == op and f_column == column:
                return value
        return None

    def _matches(self, row):
        for op, column, value in self.filters:
            # Join filters such as brands.company_id are not modelled
            if column not in row:
                continue
            if op == "eq" and row[column] != value:
                return False
            if op == "gte" and str(row[column]) < str(value):
                return False
            if op == "lte" and str(row[column]) > str(value):
                return False
            if op == "in" and row[column] not in value:
                return False
        return True

    def execute(self):
        self.client.queries.append(self)
        error = self.client.errors.get(self.table)
        if error is not None:
            raise error

        source = self.client.tables.setdefault(self.table, [])
        matched = [row for row in source if self._matches(row)]

        if self.update_values is not None:
            if self.table in self.client.blocked_updates:
                return FakeResponse([], count=None)
            for row in matched:
                row.update(self.update_values)
            return FakeResponse([dict(r) for r in matched])

        rows = [dict(r) for r in matched]
        if self.order_by:
            column, desc = self.order_by
            rows.sort(key=lambda r: str(r.get(column, "")), reverse=desc)
        if self.limit_n is not None:
            rows = rows[:self.limit_n]
        return FakeResponse(rows, count=len(rows) if self.count_mode else None)


class FakeRpc:
    def __init__(self, client, name, params):
        self.client = client
        self.name = name
        self.params = params

    def execute(self):
        self.client.rpc_calls.append((self.name, self.params))
        return FakeResponse(None)


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    def upload(self, path, file, file_options=None):
        self.storage.uploads.append((self.name, path, file, file_options))
        return {"Key": f"{self.name}/{path}"}

    def get_public_url(self, path):
        return f"https://storage.test/{self.name}/{path}"


class FakeStorage:
    def __init__(self):
        self.uploads = []

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    def __init__(self, tables=None, errors=None, blocked_updates=()):
        self.tables = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.errors = dict(errors or {})
        self.blocked_updates = set(blocked_updates)
        self.queries = []
        self.rpc_calls = []
        self.storage = FakeStorage()

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params=None):
        return FakeRpc(self, name, params)

    def queries_for(self, table):
        return [q for q in self.queries if q.table == table]


@pytest.fixture
def make_supabase():
    return FakeSupabase
