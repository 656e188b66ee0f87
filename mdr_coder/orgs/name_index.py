"""
Name Index Builder
==================
Materialises the lowercase alias -> registry id lookup used by the match
pass. Built once at the start of a run and dropped at the end.

Aliases carrying the non-canonical qualifier are never indexed. When two
aliases lowercase to the same text but point at different organisations the
collision policy decides what goes into the index:

- unrestricted: keep every alias row (the store picks one during matching)
- first_wins:   keep the alias with the lowest alias row id
- last_wins:    keep the alias with the highest alias row id
- reject:       leave the name out, so those rows stay unmatched for review
"""

import logging
from typing import Optional

from mdr_coder import settings

logger = logging.getLogger(__name__)

COLLISION_POLICIES = ('unrestricted', 'first_wins', 'last_wins', 'reject')


class NameIndex:
    """Run-scoped handle on the name index table."""

    def __init__(
        self,
        db_manager,
        collision_policy: Optional[str] = None,
        work_schema: Optional[str] = None,
        registry_schema: Optional[str] = None,
        non_canonical_qualifier_id: Optional[int] = None,
    ):
        policy = collision_policy or settings.COLLISION_POLICY
        if policy not in COLLISION_POLICIES:
            raise ValueError(f"Unknown collision policy: {policy}. Expected one of {COLLISION_POLICIES}")
        self.db_manager = db_manager
        self.collision_policy = policy
        self.table = f"{work_schema or settings.WORK_SCHEMA}.temp_org_names"
        self.registry_schema = registry_schema or settings.REGISTRY_SCHEMA
        self.qualifier_id = (settings.NON_CANONICAL_QUALIFIER_ID
                             if non_canonical_qualifier_id is None else non_canonical_qualifier_id)

    def __enter__(self) -> 'NameIndex':
        self.build()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.drop()
        return False

    def _select_sql(self) -> str:
        aliases = f"{self.registry_schema}.org_names a"
        if self.collision_policy == 'unrestricted':
            return f"""
                select a.org_id, lower(a.name) as name
                from {aliases}
                where a.qualifier_id <> %(qualifier_id)s
                and a.name is not null"""
        if self.collision_policy in ('first_wins', 'last_wins'):
            direction = 'asc' if self.collision_policy == 'first_wins' else 'desc'
            return f"""
                select distinct on (lower(a.name)) a.org_id, lower(a.name) as name
                from {aliases}
                where a.qualifier_id <> %(qualifier_id)s
                and a.name is not null
                order by lower(a.name), a.id {direction}"""
        return f"""
                select min(a.org_id) as org_id, lower(a.name) as name
                from {aliases}
                where a.qualifier_id <> %(qualifier_id)s
                and a.name is not null
                group by lower(a.name)
                having count(distinct a.org_id) = 1"""

    def build(self) -> int:
        """
        (Re)create the index table.

        Returns:
            Number of names indexed
        """
        sql = f"""drop table if exists {self.table};
            create table {self.table}
            as {self._select_sql()};
            create index on {self.table} (name);"""
        self.db_manager.execute_update(sql, {'qualifier_id': self.qualifier_id})

        # the table exists from here on; the counts below are diagnostics only
        try:
            count = self.db_manager.get_table_row_count(self.table)
        except Exception as e:
            logger.error(f"Counting names in {self.table} failed: {e}")
            count = 0
        logger.info(f"Name index {self.table} built with {count} names "
                    f"(collision policy: {self.collision_policy})")

        try:
            ambiguous = self.count_ambiguous_names()
        except Exception as e:
            logger.error(f"Counting ambiguous organisation names failed: {e}")
            ambiguous = 0
        if ambiguous:
            logger.warning(f"{ambiguous} lowercase organisation names map to more than one organisation")
        return count

    def count_ambiguous_names(self) -> int:
        """Number of lowercase aliases pointing at more than one organisation."""
        sql = f"""select count(*) from (
                select lower(a.name)
                from {self.registry_schema}.org_names a
                where a.qualifier_id <> %(qualifier_id)s
                and a.name is not null
                group by lower(a.name)
                having count(distinct a.org_id) > 1) x"""
        return self.db_manager.execute_scalar(sql, {'qualifier_id': self.qualifier_id}) or 0

    def lookup(self, name: Optional[str]) -> Optional[int]:
        """Registry id for a name, compared case-insensitively."""
        if name is None:
            return None
        return self.db_manager.execute_scalar(
            f"select org_id from {self.table} where name = lower(%(name)s) order by org_id limit 1",
            {'name': name},
        )

    def drop(self) -> None:
        self.db_manager.execute_update(f"drop table if exists {self.table};")
        logger.info(f"Name index {self.table} dropped")
