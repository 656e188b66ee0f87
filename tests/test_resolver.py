"""
Two-Pass Resolver Tests
=======================
Match / backfill statements, pass ordering, scope filters and coverage.
"""

import logging

import pytest

from mdr_coder.orgs.batching import RangeBatchExecutor
from mdr_coder.orgs.entities import (
    ALL_KINDS,
    DATA_OBJECTS,
    OBJECT_INSTANCES,
    STUDY_IDENTIFIERS,
    STUDY_ORGANISATIONS,
)
from mdr_coder.orgs.name_index import NameIndex
from mdr_coder.orgs.resolver import TwoPassResolver
from mdr_coder.orgs.scope import CodingScope


def make_resolver(db, scope=None, **kwargs):
    scope = scope or CodingScope.incremental()
    executor = RangeBatchExecutor(db, isolate_windows=False)
    return TwoPassResolver(db, NameIndex(db), scope, executor=executor, **kwargs)


def test_match_statement_for_study_organisations(fake_db):
    make_resolver(fake_db).match(STUDY_ORGANISATIONS)

    sql, params = fake_db.statements[0]
    assert sql == (
        "update ad.study_organisations c set organisation_id = n.org_id "
        "from ad.temp_org_names n "
        "where c.organisation_id is null "
        "and c.organisation_name is not null "
        "and lower(c.organisation_name) = n.name "
        "and c.coded_on is null"
    )
    assert params == {}


def test_backfill_statement_copies_default_name_and_ror_id(fake_db):
    make_resolver(fake_db).backfill(STUDY_ORGANISATIONS)

    sql = fake_db.sql_log()[0]
    assert sql == (
        "update ad.study_organisations c set organisation_name = g.default_name, "
        "organisation_ror_id = g.ror_id, "
        "coded_on = CURRENT_TIMESTAMP "
        "from context_ctx.organisations g "
        "where c.organisation_id = g.id "
        "and c.coded_on is null"
    )


def test_object_instances_have_no_ror_column(fake_db):
    make_resolver(fake_db).backfill(OBJECT_INSTANCES)
    sql = fake_db.sql_log()[0]
    assert "set system = g.default_name, coded_on = CURRENT_TIMESTAMP" in sql
    assert "ror_id" not in sql


def test_data_objects_use_managing_org_columns(fake_db):
    resolver = make_resolver(fake_db)
    assert "lower(c.managing_org) = n.name" in " ".join(resolver.match_sql(DATA_OBJECTS).split())
    assert "managing_org_ror_id = g.ror_id" in " ".join(resolver.backfill_sql(DATA_OBJECTS).split())


@pytest.mark.parametrize("kind", ALL_KINDS, ids=lambda k: k.key)
def test_every_kind_guards_unset_ids(fake_db, kind):
    sql = " ".join(make_resolver(fake_db).match_sql(kind).split())
    assert f"c.{kind.id_field} is null" in sql
    assert f"c.{kind.name_field} is not null" in sql


def test_backfill_runs_after_match(fake_db):
    """All pass 1 windows finish before any pass 2 window starts."""
    fake_db.id_ranges['ad.study_identifiers'] = (1, 450000)
    make_resolver(fake_db).resolve(STUDY_IDENTIFIERS)

    sql_log = fake_db.sql_log()
    kinds = ['match' if 'n.org_id' in sql else 'backfill' for sql in sql_log]
    assert kinds == ['match'] * 3 + ['backfill'] * 3
    assert [p['window_start'] for _, p in fake_db.statements] == [1, 200001, 400001] * 2


def test_test_subset_scope_for_object_kinds(fake_db):
    scope = CodingScope.test_subset(['NCT001'], ['OBJ1', 'OBJ2'])
    make_resolver(fake_db, scope=scope).resolve(DATA_OBJECTS)

    for sql, params in fake_db.statements:
        assert sql.endswith("and c.sd_oid = ANY(%(test_sd_oids)s)")
        assert params == {'test_sd_oids': ['OBJ1', 'OBJ2']}


def test_full_scope_has_no_coded_on_filter(fake_db):
    make_resolver(fake_db, scope=CodingScope.full()).resolve(STUDY_ORGANISATIONS)
    assert all("coded_on is null" not in sql for sql in fake_db.sql_log())


def test_progress_labels(fake_db, caplog):
    fake_db.rowcount = lambda sql, params: 3
    with caplog.at_level(logging.INFO):
        make_resolver(fake_db).resolve(STUDY_IDENTIFIERS)

    assert "Coding sources for unmatched study identifiers - 3 done as a single query" in caplog.text
    assert "Inserting default org data for unmatched study identifiers - 3 done as a single query" in caplog.text


def test_resolve_reports_counts_and_coverage(fake_db, caplog):
    table = 'ad.study_organisations'
    fake_db.rowcount = lambda sql, params: 4 if 'n.org_id' in sql else 9
    fake_db.table_counts[table] = 200
    fake_db.field_counts[(table, 'organisation_id')] = 150
    fake_db.field_counts[(table, 'organisation_ror_id')] = 100

    with caplog.at_level(logging.INFO):
        result = make_resolver(fake_db).resolve(STUDY_ORGANISATIONS)

    assert result.rows_matched == 4
    assert result.rows_backfilled == 9
    assert result.errors == []
    assert result.coverage.coded_pct == 75.0
    assert result.coverage.ror_coded_pct == 50.0
    assert "150 records, from 200, 75.0 %, have MDR coded organisations in ad.study_organisations" in caplog.text
    assert "100 records, from 200, 50.0 %, have ROR coded organisations in ad.study_organisations" in caplog.text


def test_match_failure_does_not_stop_backfill(fake_db):
    fake_db.fail_when = lambda sql, params: 'n.org_id' in sql
    result = make_resolver(fake_db).resolve(STUDY_ORGANISATIONS)

    assert len(result.errors) == 1
    assert result.errors[0].startswith("In Coding orgs for unmatched study organisations")
    assert any('g.default_name' in sql for sql in fake_db.sql_log())
    assert result.coverage is not None


def test_schemas_can_be_overridden(fake_db):
    resolver = make_resolver(fake_db, data_schema='it_ad', registry_schema='it_ctx')
    resolver.resolve(STUDY_ORGANISATIONS)
    assert fake_db.sql_log()[0].startswith("update it_ad.study_organisations c")
    assert "from it_ctx.organisations g" in fake_db.sql_log()[1]
