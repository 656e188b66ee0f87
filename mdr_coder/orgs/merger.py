"""
Duplicate Contributor Merger
============================
The same organisation is sometimes entered for a study as both sponsor and
funder, often under different names, so the equality only shows up after
coding. Where a study has a sponsor record and a funder record with the same
comparison key, the sponsor record is re-tagged with the joint
sponsor-and-funder role and the funder record is deleted.

Comparison variants:
- ids:   coded records, compared on organisation_id
- names: records that failed coding, compared on organisation_name

Per study id window the staging table is truncated, repopulated with the
(study, key) groups holding more than one sponsor/funder record, and used to
amend study_organisations. It is dropped once the whole variant is done.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mdr_coder import settings
from mdr_coder.orgs.batching import IdWindow, RangeBatchExecutor
from mdr_coder.orgs.entities import STUDY_ORGANISATIONS
from mdr_coder.orgs.scope import CodingScope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonVariant:
    name: str
    staging_column: str
    staging_type: str
    org_column: str
    record_filter: str


COMPARISONS: Dict[str, ComparisonVariant] = {
    'ids': ComparisonVariant('ids', 'org_id', 'int', 'organisation_id',
                             "g.organisation_id is not null"),
    'names': ComparisonVariant('names', 'org_name', 'varchar', 'organisation_name',
                               "g.organisation_id is null and g.organisation_name is not null"),
}


@dataclass
class MergeResult:
    """Outcome of one comparison variant"""
    comparison: str
    groups_identified: int = 0
    records_merged: int = 0
    records_deleted: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'comparison': self.comparison,
            'groups_identified': self.groups_identified,
            'records_merged': self.records_merged,
            'records_deleted': self.records_deleted,
            'errors': self.errors,
        }


class DuplicateContributorMerger:
    """Collapses sponsor + funder records for the same organisation."""

    def __init__(
        self,
        db_manager,
        scope: CodingScope,
        executor: Optional[RangeBatchExecutor] = None,
        batch_size: Optional[int] = None,
        data_schema: Optional[str] = None,
        work_schema: Optional[str] = None,
    ):
        self.db_manager = db_manager
        self.scope = scope
        self.executor = executor or RangeBatchExecutor(db_manager)
        self.batch_size = batch_size or settings.MERGE_BATCH_SIZE
        self.data_schema = data_schema or settings.DATA_SCHEMA
        self.work_schema = work_schema or settings.WORK_SCHEMA
        self.contributors = STUDY_ORGANISATIONS.qualified_table(self.data_schema)
        self.studies = f"{self.data_schema}.studies"

    def staging_table(self, variant: ComparisonVariant) -> str:
        return f"{self.work_schema}.temp_dup_org_{variant.name}"

    def merge(self, comparison: str) -> MergeResult:
        """
        Run one comparison variant over the study id range.

        Args:
            comparison: 'ids' or 'names'
        """
        if comparison not in COMPARISONS:
            raise ValueError(f"Unknown comparison: {comparison}. Expected one of {sorted(COMPARISONS)}")
        variant = COMPARISONS[comparison]
        staging = self.staging_table(variant)
        result = MergeResult(comparison=comparison)
        label = (f"De-duplicating orgs (sponsors + funders) using {comparison} "
                 f"for {self.scope.feedback_label} study organisations")

        try:
            self.db_manager.execute_update(
                f"""drop table if exists {staging};
                create table {staging}
                (sd_sid varchar, {variant.staging_column} {variant.staging_type},
                 sponsor_id int default 0,
                 funder_id int default 0);""")
        except Exception as e:
            message = f"In {label}: {e}"
            logger.error(message)
            result.errors.append(message)
            return result

        def work(window: Optional[IdWindow]) -> int:
            return self._merge_window(variant, window, result)

        try:
            batch = self.executor.run_over_table(
                self.studies, self.batch_size, work, label,
                window_template=("{label} - {count} records identified as potential duplicates, "
                                 f"using {comparison}, in ids " + "{start} to {end}"),
                single_template=("{label} - {count} records identified as potential duplicates, "
                                 f"using {comparison}, as a single query"),
            )
            result.groups_identified = batch.rows_affected
            result.errors.extend(batch.errors)
        finally:
            try:
                self.db_manager.execute_update(f"drop table if exists {staging};")
            except Exception as e:
                message = f"In dropping {staging}: {e}"
                logger.error(message)
                result.errors.append(message)

        logger.info(f"{label} - {result.records_merged} records merged, "
                    f"{result.records_deleted} duplicate records deleted")
        return result

    def merge_all(self) -> List[MergeResult]:
        """Id comparison first, then names for the records still uncoded."""
        return [self.merge('ids'), self.merge('names')]

    def _merge_window(self, variant: ComparisonVariant, window: Optional[IdWindow], result: MergeResult) -> int:
        """Rebuild the staging rows for one study window and amend the records."""
        staging = self.staging_table(variant)
        self.db_manager.execute_update(f"truncate table {staging};")

        scope_sql, params = self.scope.merge_filter()
        window_sql = ""
        if window is not None:
            window_sql = window.as_sql()
            params = {**params, **window.as_params()}
        params = {**params, 'sponsor_role': settings.SPONSOR_ROLE_ID, 'funder_role': settings.FUNDER_ROLE_ID}
        identified = self.db_manager.execute_update(
            f"""insert into {staging} (sd_sid, {variant.staging_column})
                select g.sd_sid, g.{variant.org_column}
                from {self.contributors} g
                inner join {self.studies} c
                on g.sd_sid = c.sd_sid
                where {variant.record_filter}
                and g.contrib_type_id in (%(sponsor_role)s, %(funder_role)s){scope_sql}{window_sql}
                group by g.sd_sid, g.{variant.org_column}
                having count(g.id) > 1;""",
            params)

        if identified:
            self._amend_records(variant, result)
        return identified

    def _amend_records(self, variant: ComparisonVariant, result: MergeResult) -> None:
        staging = self.staging_table(variant)
        roles = {
            'sponsor_id': settings.SPONSOR_ROLE_ID,
            'funder_id': settings.FUNDER_ROLE_ID,
        }

        for slot, role_id in roles.items():
            self.db_manager.execute_update(
                f"""update {staging} d
                    set {slot} = g.id
                    from {self.contributors} g
                    where d.sd_sid = g.sd_sid
                    and d.{variant.staging_column} = g.{variant.org_column}
                    and {variant.record_filter}
                    and g.contrib_type_id = %(role_id)s;""",
                {'role_id': role_id})

        # both roles are needed for a mergeable duplicate
        self.db_manager.execute_update(
            f"delete from {staging} d where d.sponsor_id = 0 or d.funder_id = 0;")

        merged = self.db_manager.execute_update(
            f"""update {self.contributors} g
                set contrib_type_id = %(merged_role)s
                from {staging} d
                where g.id = d.sponsor_id;""",
            {'merged_role': settings.MERGED_ROLE_ID})

        deleted = self.db_manager.execute_update(
            f"""delete from {self.contributors} g
                using {staging} d
                where g.id = d.funder_id;""")

        result.records_merged += merged
        result.records_deleted += deleted
