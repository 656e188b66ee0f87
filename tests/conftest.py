"""
Shared fixtures for the organisation coder tests.

FakeDatabaseManager stands in for mdr_coder.db_utils.DatabaseManager: it
records every statement with its parameters and answers the count / range
helpers from dictionaries set up by each test.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))


def normalize_sql(sql: str) -> str:
    """Collapse whitespace so assertions are not tied to indentation."""
    return " ".join(sql.split())


class FakeDatabaseManager:
    def __init__(self):
        self.statements = []
        self.id_ranges = {}
        self.default_id_range = (1, 10)
        self.table_counts = {}
        self.field_counts = {}
        self.scalar_result = 0
        self.rowcount = lambda sql, params: 0
        self.fail_when = lambda sql, params: False

    def _record(self, sql, params):
        sql = normalize_sql(sql)
        self.statements.append((sql, params))
        if self.fail_when(sql, params):
            raise RuntimeError("relation does not exist")
        return sql

    def execute_update(self, query, params=None):
        sql = self._record(query, params)
        return self.rowcount(sql, params)

    def execute_scalar(self, query, params=None):
        self._record(query, params)
        return self.scalar_result

    def execute_query(self, query, params=None):
        self._record(query, params)
        return []

    def get_id_range(self, table_name):
        return self.id_ranges.get(table_name, self.default_id_range)

    def get_table_row_count(self, table_name):
        return self.table_counts.get(table_name, 0)

    def get_field_count(self, table_name, field_name):
        return self.field_counts.get((table_name, field_name), 0)

    def sql_log(self):
        return [sql for sql, _ in self.statements]

    def index_of(self, fragment, start=0):
        """Index of the first statement at or after ``start`` containing ``fragment``."""
        for i, sql in enumerate(self.sql_log()):
            if i >= start and fragment in sql:
                return i
        raise AssertionError(f"No statement containing {fragment!r}")


@pytest.fixture
def fake_db():
    return FakeDatabaseManager()
