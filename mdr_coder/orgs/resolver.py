"""
Two-Pass Resolver
=================
Codes the organisation names held in one entity table.

Pass 1 (match): rows in scope with a name but no organisation id get the
registry id whose indexed alias equals the lowercased name.

Pass 2 (backfill): rows in scope with an organisation id get the registry's
default name, its ROR id (where the table has a ROR column) and a coded_on
timestamp.

Both passes run through the RangeBatchExecutor over the table's id range.
Pass 2 reads the ids written by pass 1, so it only starts once pass 1 has
returned. Coverage feedback over the whole table follows.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mdr_coder import settings
from mdr_coder.orgs.batching import BatchResult, RangeBatchExecutor
from mdr_coder.orgs.entities import EntityKind
from mdr_coder.orgs.feedback import CoverageReport, FeedbackReporter
from mdr_coder.orgs.name_index import NameIndex
from mdr_coder.orgs.scope import CodingScope

logger = logging.getLogger(__name__)


@dataclass
class ResolutionResult:
    """Outcome of coding one entity kind"""
    kind: str
    rows_matched: int = 0
    rows_backfilled: int = 0
    coverage: Optional[CoverageReport] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'rows_matched': self.rows_matched,
            'rows_backfilled': self.rows_backfilled,
            'coverage': self.coverage.to_dict() if self.coverage else None,
            'errors': self.errors,
        }


class TwoPassResolver:
    """Match then backfill organisation names for any EntityKind."""

    def __init__(
        self,
        db_manager,
        name_index: NameIndex,
        scope: CodingScope,
        executor: Optional[RangeBatchExecutor] = None,
        reporter: Optional[FeedbackReporter] = None,
        batch_size: Optional[int] = None,
        data_schema: Optional[str] = None,
        registry_schema: Optional[str] = None,
    ):
        self.db_manager = db_manager
        self.name_index = name_index
        self.scope = scope
        self.executor = executor or RangeBatchExecutor(db_manager)
        self.data_schema = data_schema or settings.DATA_SCHEMA
        self.reporter = reporter or FeedbackReporter(db_manager, self.data_schema)
        self.batch_size = batch_size or settings.RESOLVE_BATCH_SIZE
        self.registry_schema = registry_schema or settings.REGISTRY_SCHEMA

    def match_sql(self, kind: EntityKind) -> str:
        scope_sql, _ = self.scope.row_filter(kind.level)
        return f"""update {kind.qualified_table(self.data_schema)} c
                    set {kind.id_field} = n.org_id
                    from {self.name_index.table} n
                    where c.{kind.id_field} is null
                    and c.{kind.name_field} is not null
                    and lower(c.{kind.name_field}) = n.name{scope_sql}"""

    def backfill_sql(self, kind: EntityKind) -> str:
        scope_sql, _ = self.scope.row_filter(kind.level)
        ror_assignment = f"\n                    {kind.code_field} = g.ror_id," if kind.code_field else ""
        return f"""update {kind.qualified_table(self.data_schema)} c
                    set {kind.name_field} = g.default_name,{ror_assignment}
                    coded_on = CURRENT_TIMESTAMP
                    from {self.registry_schema}.organisations g
                    where c.{kind.id_field} = g.id{scope_sql}"""

    def match(self, kind: EntityKind) -> BatchResult:
        _, params = self.scope.row_filter(kind.level)
        label = f"Coding {kind.subject} for {self.scope.feedback_label} {kind.description}"
        return self.executor.apply_to_table(
            kind.qualified_table(self.data_schema), self.batch_size, self.match_sql(kind), label, params)

    def backfill(self, kind: EntityKind) -> BatchResult:
        _, params = self.scope.row_filter(kind.level)
        label = f"Inserting default org data for {self.scope.feedback_label} {kind.description}"
        return self.executor.apply_to_table(
            kind.qualified_table(self.data_schema), self.batch_size, self.backfill_sql(kind), label, params)

    def resolve(self, kind: EntityKind) -> ResolutionResult:
        """Run both passes and the coverage feedback for one entity kind."""
        result = ResolutionResult(kind=kind.key)

        matched = self.match(kind)
        result.rows_matched = matched.rows_affected
        result.errors.extend(matched.errors)

        backfilled = self.backfill(kind)
        result.rows_backfilled = backfilled.rows_affected
        result.errors.extend(backfilled.errors)

        try:
            result.coverage = self.reporter.report(kind)
        except Exception as e:
            message = f"In coverage feedback for {kind.description}: {e}"
            logger.error(message)
            result.errors.append(message)

        return result
