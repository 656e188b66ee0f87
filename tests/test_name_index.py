"""
Name Index Tests
================
Build / drop lifecycle and alias collision policies.
"""

import pytest

from mdr_coder.orgs.name_index import COLLISION_POLICIES, NameIndex


def test_build_recreates_index_without_non_canonical_aliases(fake_db):
    fake_db.table_counts['ad.temp_org_names'] = 1234
    index = NameIndex(fake_db, collision_policy='unrestricted')

    count = index.build()

    sql, params = fake_db.statements[0]
    assert sql.startswith("drop table if exists ad.temp_org_names; create table ad.temp_org_names as")
    assert "select a.org_id, lower(a.name) as name from context_ctx.org_names a" in sql
    assert "a.qualifier_id <> %(qualifier_id)s" in sql
    assert "create index on ad.temp_org_names (name)" in sql
    assert params == {'qualifier_id': 10}
    assert count == 1234


def test_reject_policy_leaves_out_ambiguous_names(fake_db):
    NameIndex(fake_db, collision_policy='reject').build()
    sql = fake_db.sql_log()[0]
    assert "group by lower(a.name) having count(distinct a.org_id) = 1" in sql


@pytest.mark.parametrize("policy, direction", [('first_wins', 'asc'), ('last_wins', 'desc')])
def test_first_and_last_wins_keep_one_alias_per_name(fake_db, policy, direction):
    NameIndex(fake_db, collision_policy=policy).build()
    sql = fake_db.sql_log()[0]
    assert "select distinct on (lower(a.name))" in sql
    assert f"order by lower(a.name), a.id {direction}" in sql


def test_ambiguous_names_are_reported(fake_db, caplog):
    fake_db.scalar_result = 3
    NameIndex(fake_db, collision_policy='unrestricted').build()
    assert "having count(distinct a.org_id) > 1" in fake_db.sql_log()[-1]
    assert "3 lowercase organisation names map to more than one organisation" in caplog.text


def test_unknown_policy_rejected(fake_db):
    with pytest.raises(ValueError):
        NameIndex(fake_db, collision_policy='newest')


def test_all_policies_build(fake_db):
    for policy in COLLISION_POLICIES:
        NameIndex(fake_db, collision_policy=policy).build()
    assert len(fake_db.statements) == 2 * len(COLLISION_POLICIES)


def test_context_manager_drops_index_after_failure(fake_db):
    with pytest.raises(KeyError):
        with NameIndex(fake_db) as index:
            raise KeyError("boom")
    assert fake_db.sql_log()[-1] == f"drop table if exists {index.table};"


def test_lookup_lowercases_the_name(fake_db):
    fake_db.scalar_result = 5
    index = NameIndex(fake_db)

    assert index.lookup("WHO") == 5
    sql, params = fake_db.statements[-1]
    assert "where name = lower(%(name)s)" in sql
    assert params == {'name': 'WHO'}


def test_lookup_of_missing_name_skips_query(fake_db):
    assert NameIndex(fake_db).lookup(None) is None
    assert fake_db.statements == []


def test_schemas_can_be_overridden(fake_db):
    index = NameIndex(fake_db, work_schema='scratch', registry_schema='reg', non_canonical_qualifier_id=99)
    index.build()
    sql, params = fake_db.statements[0]
    assert index.table == 'scratch.temp_org_names'
    assert "from reg.org_names a" in sql
    assert params == {'qualifier_id': 99}


def test_ambiguity_count_failure_keeps_index(fake_db, caplog):
    fake_db.table_counts['ad.temp_org_names'] = 40
    fake_db.fail_when = lambda sql, params: "having count(distinct a.org_id) > 1) x" in sql

    count = NameIndex(fake_db, collision_policy='reject').build()

    assert count == 40
    assert "Counting ambiguous organisation names failed: relation does not exist" in caplog.text


def test_row_count_failure_keeps_index(fake_db, caplog):
    def broken_count(table_name):
        raise RuntimeError("statement timeout")

    fake_db.get_table_row_count = broken_count

    assert NameIndex(fake_db).build() == 0
    assert "Counting names in ad.temp_org_names failed: statement timeout" in caplog.text
