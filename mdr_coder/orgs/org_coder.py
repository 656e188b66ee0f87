"""
Organisation Coding Engine
==========================
Runs a complete organisation coding pass over the study and object tables.

Process:
1. Build the lowercase name index from the registry aliases
2. Code study identifiers and study organisations
3. Merge sponsor + funder duplicates (by ids, then by names)
4. Code study people, then the five object-level tables
5. Drop the name index (always)
6. Optionally refresh the unmatched-name review list

Failures in any single step are logged and collected in the summary; the
remaining steps still run.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mdr_coder import settings
from mdr_coder.db_utils import DatabaseManager
from mdr_coder.orgs.batching import RangeBatchExecutor
from mdr_coder.orgs.entities import (
    ALL_KINDS,
    OBJECT_KINDS,
    EntityKind,
    STUDY_IDENTIFIERS,
    STUDY_ORGANISATIONS,
    STUDY_PEOPLE,
)
from mdr_coder.orgs.merger import DuplicateContributorMerger, MergeResult
from mdr_coder.orgs.name_index import NameIndex
from mdr_coder.orgs.resolver import ResolutionResult, TwoPassResolver
from mdr_coder.orgs.scope import CodingScope, load_test_id_lists
from mdr_coder.orgs.unmatched import UnmatchedNameAggregator

logger = logging.getLogger(__name__)


@dataclass
class OrgCodingSummary:
    """Summary statistics from an organisation coding run"""
    scope: str = ''
    names_indexed: int = 0
    resolutions: List[ResolutionResult] = field(default_factory=list)
    merges: List[MergeResult] = field(default_factory=list)
    unmatched_names: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def rows_coded(self) -> int:
        return sum(r.rows_matched for r in self.resolutions)

    @property
    def records_merged(self) -> int:
        return sum(m.records_merged for m in self.merges)

    @property
    def records_deleted(self) -> int:
        return sum(m.records_deleted for m in self.merges)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scope': self.scope,
            'names_indexed': self.names_indexed,
            'rows_coded': self.rows_coded,
            'records_merged': self.records_merged,
            'records_deleted': self.records_deleted,
            'resolutions': [r.to_dict() for r in self.resolutions],
            'merges': [m.to_dict() for m in self.merges],
            'unmatched_names': self.unmatched_names,
            'errors': self.errors,
        }


class OrgCodingEngine:
    """Wires the name index, resolver, merger and aggregator into one run."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        scope: CodingScope,
        collision_policy: Optional[str] = None,
        isolate_windows: Optional[bool] = None,
        resolve_batch_size: Optional[int] = None,
        merge_batch_size: Optional[int] = None,
    ):
        self.db_manager = db_manager
        self.scope = scope
        self.name_index = NameIndex(db_manager, collision_policy=collision_policy)
        executor = RangeBatchExecutor(db_manager, isolate_windows=isolate_windows)
        self.resolver = TwoPassResolver(
            db_manager, self.name_index, scope, executor=executor, batch_size=resolve_batch_size)
        self.merger = DuplicateContributorMerger(
            db_manager, scope, executor=executor, batch_size=merge_batch_size)
        self.aggregator = UnmatchedNameAggregator(db_manager)
        self.summary = OrgCodingSummary(scope=scope.feedback_label)

    def run(self, source_id: Optional[int] = None, store_unmatched: bool = False) -> OrgCodingSummary:
        """
        Execute the full coding run.

        Args:
            source_id: Source whose review rows are refreshed when store_unmatched is set
            store_unmatched: Refresh the unmatched-name review list afterwards

        Returns:
            OrgCodingSummary with statistics
        """
        self.summary = OrgCodingSummary(scope=self.scope.feedback_label)

        logger.info("=" * 60)
        logger.info(f"Organisation coding - Starting ({self.scope.feedback_label} records)")
        logger.info("=" * 60)

        try:
            self.summary.names_indexed = self.name_index.build()
        except Exception as e:
            logger.error(f"Building the name index failed: {e}", exc_info=True)
            self.summary.errors.append(f"In building the name index: {e}")
            self._drop_index()
            return self.summary

        try:
            logger.info("Step 1: Coding study tables...")
            self._resolve(STUDY_IDENTIFIERS)
            self._resolve(STUDY_ORGANISATIONS)

            logger.info("Step 2: Merging duplicate sponsors and funders...")
            for merge in self.merger.merge_all():
                self.summary.merges.append(merge)
                self.summary.errors.extend(merge.errors)

            self._resolve(STUDY_PEOPLE)

            logger.info("Step 3: Coding object tables...")
            for kind in OBJECT_KINDS:
                self._resolve(kind)
        finally:
            self._drop_index()

        if store_unmatched:
            logger.info("Step 4: Storing unmatched names for review...")
            if source_id is None:
                self.summary.errors.append("Unmatched names not stored: no source id given")
                logger.error("Unmatched names not stored: no source id given")
            else:
                self._store_unmatched(source_id)

        logger.info("=" * 60)
        logger.info("Organisation coding complete!")
        logger.info(f"  Rows coded: {self.summary.rows_coded}")
        logger.info(f"  Sponsor/funder records merged: {self.summary.records_merged}")
        logger.info(f"  Errors: {len(self.summary.errors)}")
        logger.info("=" * 60)
        return self.summary

    def _resolve(self, kind: EntityKind) -> None:
        result = self.resolver.resolve(kind)
        self.summary.resolutions.append(result)
        self.summary.errors.extend(result.errors)

    def _drop_index(self) -> None:
        try:
            self.name_index.drop()
        except Exception as e:
            logger.error(f"Dropping the name index failed: {e}")
            self.summary.errors.append(f"In dropping the name index: {e}")

    def _store_unmatched(self, source_id: int) -> None:
        for kind in ALL_KINDS:
            try:
                self.summary.unmatched_names[kind.key] = self.aggregator.store(kind, source_id)
            except Exception as e:
                message = f"In storing unmatched {kind.description} names: {e}"
                logger.error(message)
                self.summary.errors.append(message)


def run_org_coding(
    db_config_path: str = "config/db_config.yml",
    source_id: Optional[int] = None,
    recode_all: bool = False,
    test_data_only: bool = False,
    store_unmatched: bool = False,
    collision_policy: Optional[str] = None,
    isolate_windows: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Main entry point for organisation coding.

    Args:
        db_config_path: Path to database configuration file
        source_id: Data source id, used for the unmatched-name review rows
        recode_all: Recode every row instead of only uncoded rows
        test_data_only: Restrict the run to the fixed test study / object lists
        store_unmatched: Refresh the unmatched-name review list afterwards
        collision_policy: Name index collision policy (default from settings)
        isolate_windows: Keep running later windows after a failed one

    Returns:
        Summary dictionary with coding statistics
    """
    logger.info(f"Initializing Organisation Coding Engine")
    logger.info(f"  Config: {db_config_path}")
    logger.info(f"  Collision policy: {collision_policy or settings.COLLISION_POLICY}")

    db_manager = DatabaseManager(db_config_path)

    try:
        if test_data_only:
            study_ids, object_ids = load_test_id_lists(db_manager)
            scope = CodingScope.test_subset(study_ids, object_ids)
        else:
            scope = CodingScope.from_options(recode_all=recode_all)

        engine = OrgCodingEngine(
            db_manager,
            scope,
            collision_policy=collision_policy,
            isolate_windows=isolate_windows,
        )
        summary = engine.run(source_id=source_id, store_unmatched=store_unmatched)
        return summary.to_dict()

    finally:
        db_manager.close()
