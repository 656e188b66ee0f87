"""
Organisation Coding Engine Tests
================================
Run order, index lifecycle and error collection across a whole run.
"""

from unittest.mock import MagicMock, patch

import pytest

from mdr_coder.orgs.entities import ALL_KINDS
from mdr_coder.orgs.org_coder import OrgCodingEngine, OrgCodingSummary, run_org_coding
from mdr_coder.orgs.scope import CodingScope

INDEX_DROP = "drop table if exists ad.temp_org_names;"


def make_engine(db, scope=None, **kwargs):
    return OrgCodingEngine(db, scope or CodingScope.incremental(), isolate_windows=False, **kwargs)


def test_run_order(fake_db):
    make_engine(fake_db).run()

    log = fake_db.sql_log()
    assert log[0].startswith("drop table if exists ad.temp_org_names; create table ad.temp_org_names")
    assert log[-1] == INDEX_DROP

    study_orgs_backfill = fake_db.index_of("update ad.study_organisations c set organisation_name = g.default_name")
    ids_merge = fake_db.index_of("create table ad.temp_dup_org_ids")
    names_merge = fake_db.index_of("create table ad.temp_dup_org_names")
    people_match = fake_db.index_of("update ad.study_people c set organisation_id = n.org_id")
    assert fake_db.index_of("update ad.study_identifiers c") < study_orgs_backfill
    assert study_orgs_backfill < ids_merge < names_merge < people_match

    tables = [sql.split()[1] for sql in log if sql.startswith("update ad.") and "n.org_id" in sql]
    assert tables == [kind.qualified_table() for kind in ALL_KINDS]


def test_every_kind_resolved_once(fake_db):
    summary = make_engine(fake_db).run()
    assert [r.kind for r in summary.resolutions] == [kind.key for kind in ALL_KINDS]
    assert [m.comparison for m in summary.merges] == ['ids', 'names']
    assert summary.errors == []


def test_index_build_failure_ends_run(fake_db):
    fake_db.fail_when = lambda sql, params: "create table ad.temp_org_names" in sql

    summary = make_engine(fake_db).run()

    assert fake_db.sql_log()[-1] == INDEX_DROP
    assert len(fake_db.statements) == 2
    assert summary.resolutions == []
    assert summary.errors == ["In building the name index: relation does not exist"]


def test_failing_table_does_not_stop_later_tables(fake_db):
    fake_db.fail_when = lambda sql, params: sql.startswith("update ad.study_identifiers")

    summary = make_engine(fake_db).run()

    assert len(summary.errors) == 2
    assert all("study identifiers" in error for error in summary.errors)
    assert any(sql.startswith("update ad.object_instances") for sql in fake_db.sql_log())
    assert fake_db.sql_log()[-1] == INDEX_DROP


def test_index_dropped_when_step_raises(fake_db):
    engine = make_engine(fake_db)
    engine.merger.merge = MagicMock(side_effect=ValueError("bad comparison"))

    with pytest.raises(ValueError):
        engine.run()
    assert fake_db.sql_log()[-1] == INDEX_DROP


def test_store_unmatched_needs_source_id(fake_db):
    summary = make_engine(fake_db).run(store_unmatched=True)
    assert summary.errors == ["Unmatched names not stored: no source id given"]
    assert not any("to_match_orgs" in sql for sql in fake_db.sql_log())


def test_store_unmatched_after_index_dropped(fake_db):
    summary = make_engine(fake_db).run(source_id=100120, store_unmatched=True)

    drop = max(i for i, sql in enumerate(fake_db.sql_log()) if sql == INDEX_DROP)
    stores = [i for i, sql in enumerate(fake_db.sql_log()) if "to_match_orgs" in sql]
    assert len(stores) == 2 * len(ALL_KINDS)
    assert min(stores) > drop
    assert set(summary.unmatched_names) == {kind.key for kind in ALL_KINDS}


def test_summary_totals():
    summary = OrgCodingSummary(scope='all')
    assert summary.to_dict() == {
        'scope': 'all',
        'names_indexed': 0,
        'rows_coded': 0,
        'records_merged': 0,
        'records_deleted': 0,
        'resolutions': [],
        'merges': [],
        'unmatched_names': {},
        'errors': [],
    }


def test_summary_adds_up_results(fake_db):
    fake_db.rowcount = lambda sql, params: 1 if "n.org_id" in sql else 0
    summary = make_engine(fake_db).run()
    assert summary.rows_coded == len(ALL_KINDS)
    assert summary.to_dict()['rows_coded'] == len(ALL_KINDS)


def test_run_org_coding_test_data(fake_db):
    fake_db.close = MagicMock()

    with patch('mdr_coder.orgs.org_coder.DatabaseManager', return_value=fake_db), \
         patch('mdr_coder.orgs.org_coder.load_test_id_lists', return_value=(['NCT001'], ['OBJ1'])):
        result = run_org_coding("config/db_config.yml", test_data_only=True)

    assert result['scope'] == 'test data'
    assert any("ANY(%(test_sd_sids)s)" in sql for sql in fake_db.sql_log())
    fake_db.close.assert_called_once()


def test_failed_ambiguity_count_does_not_stop_coding(fake_db):
    fake_db.fail_when = lambda sql, params: "having count(distinct a.org_id) > 1) x" in sql

    summary = make_engine(fake_db).run()

    assert [r.kind for r in summary.resolutions] == [kind.key for kind in ALL_KINDS]
    assert summary.errors == []


def test_each_run_starts_a_fresh_summary(fake_db):
    engine = make_engine(fake_db)
    engine.run()
    summary = engine.run()

    assert len(summary.resolutions) == len(ALL_KINDS)
    assert len(summary.merges) == 2


def test_merges_run_through_merge_all(fake_db):
    engine = make_engine(fake_db)
    engine.merger.merge_all = MagicMock(return_value=[])

    summary = engine.run()

    engine.merger.merge_all.assert_called_once_with()
    assert summary.merges == []
