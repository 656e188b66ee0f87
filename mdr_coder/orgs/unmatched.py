"""
Unmatched Name Aggregator
=========================
Stores the organisation names that are still uncoded, with their frequency,
in the registry's to_match_orgs table so curators can add aliases for the
most common ones. Each store replaces the rows previously held for the same
source and table.
"""

import logging
from typing import Dict, Optional

import pandas as pd
from sqlalchemy import text

from mdr_coder import settings
from mdr_coder.orgs.entities import ALL_KINDS, EntityKind

logger = logging.getLogger(__name__)


class UnmatchedNameAggregator:
    """Refreshes the review list of uncoded organisation names."""

    def __init__(self, db_manager, data_schema: Optional[str] = None, registry_schema: Optional[str] = None):
        self.db_manager = db_manager
        self.data_schema = data_schema or settings.DATA_SCHEMA
        self.review_table = f"{registry_schema or settings.REGISTRY_SCHEMA}.to_match_orgs"

    def store(self, kind: EntityKind, source_id: int) -> int:
        """
        Replace the stored unmatched names for one entity kind.

        Args:
            kind: Entity kind to aggregate
            source_id: Data source the coded tables belong to

        Returns:
            Number of distinct names stored
        """
        params = {'source_id': source_id, 'source_table': kind.table}
        self.db_manager.execute_update(
            f"""delete from {self.review_table}
                where source_id = %(source_id)s
                and source_table = %(source_table)s;""",
            params)

        stored = self.db_manager.execute_update(
            f"""insert into {self.review_table} (source_id, source_table, org_name, number_of)
                select %(source_id)s, %(source_table)s, {kind.name_field}, count({kind.name_field})
                from {kind.qualified_table(self.data_schema)}
                where {kind.id_field} is null
                and {kind.name_field} is not null{kind.review_filter}
                group by {kind.name_field};""",
            params)

        logger.info(f"Stored {stored} unmatched organisation names from {kind.description}, for review")
        return stored

    def store_all(self, source_id: int) -> Dict[str, int]:
        """Store unmatched names for every entity kind."""
        return {kind.key: self.store(kind, source_id) for kind in ALL_KINDS}

    def fetch_review_frame(self, source_id: int, source_table: Optional[str] = None) -> pd.DataFrame:
        """Stored review rows for a source, optionally one table, most frequent names first."""
        table_filter = "AND source_table = :source_table" if source_table else ""
        query = text(f"""
            SELECT source_table, org_name, number_of
            FROM {self.review_table}
            WHERE source_id = :source_id
            {table_filter}
            ORDER BY number_of DESC, source_table, org_name
        """)
        params = {'source_id': source_id}
        if source_table:
            params['source_table'] = source_table
        with self.db_manager.get_engine().connect() as conn:
            return pd.read_sql(query, conn, params=params)
