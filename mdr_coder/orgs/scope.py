"""
Run scope for organisation coding
=================================
Decides which entity rows a coding run may touch.

Modes:
- incremental: only rows never coded (coded_on IS NULL)
- full: every row, used when the whole registry is reprocessed
- test-subset: only rows whose study / object belongs to the fixed test
  lists; overrides the other two

The scope renders SQL fragments against the entity alias ``c`` together with
the named parameters they need, so callers append them to their statements.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from mdr_coder import settings

logger = logging.getLogger(__name__)


class ScopeMode(str, Enum):
    INCREMENTAL = 'incremental'
    FULL = 'full'
    TEST_SUBSET = 'test'


# Level of the parent key an entity table hangs from
STUDY_LEVEL = 'study'
OBJECT_LEVEL = 'object'


@dataclass(frozen=True)
class CodingScope:
    """Run-wide row filter, fixed at construction."""
    mode: ScopeMode
    test_study_ids: Tuple[str, ...] = field(default_factory=tuple)
    test_object_ids: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def incremental(cls) -> 'CodingScope':
        return cls(ScopeMode.INCREMENTAL)

    @classmethod
    def full(cls) -> 'CodingScope':
        return cls(ScopeMode.FULL)

    @classmethod
    def test_subset(cls, study_ids: List[str], object_ids: List[str]) -> 'CodingScope':
        return cls(ScopeMode.TEST_SUBSET, tuple(study_ids), tuple(object_ids))

    @classmethod
    def from_options(
        cls,
        recode_all: bool = False,
        test_study_ids: Optional[List[str]] = None,
        test_object_ids: Optional[List[str]] = None,
    ) -> 'CodingScope':
        """
        Build the scope from run options.

        Test id lists win over the incremental / full choice.
        """
        if test_study_ids is not None or test_object_ids is not None:
            return cls.test_subset(test_study_ids or [], test_object_ids or [])
        return cls.full() if recode_all else cls.incremental()

    @property
    def feedback_label(self) -> str:
        """Human readable label used in progress lines"""
        if self.mode == ScopeMode.TEST_SUBSET:
            return 'test data'
        if self.mode == ScopeMode.FULL:
            return 'all'
        return 'unmatched'

    def row_filter(self, level: str) -> Tuple[str, Dict[str, Any]]:
        """
        SQL fragment (leading 'and') restricting entity rows aliased ``c``.

        Args:
            level: STUDY_LEVEL or OBJECT_LEVEL

        Returns:
            (sql_fragment, params)
        """
        if self.mode == ScopeMode.TEST_SUBSET:
            return self._test_filter(level)
        if self.mode == ScopeMode.INCREMENTAL:
            return " and c.coded_on is null", {}
        return "", {}

    def merge_filter(self) -> Tuple[str, Dict[str, Any]]:
        """
        SQL fragment restricting studies aliased ``c`` for duplicate merging.

        Only the test subset narrows the merge: the incremental filter would
        exclude the very rows that were just coded.
        """
        if self.mode == ScopeMode.TEST_SUBSET:
            return self._test_filter(STUDY_LEVEL)
        return "", {}

    def _test_filter(self, level: str) -> Tuple[str, Dict[str, Any]]:
        if level == STUDY_LEVEL:
            return " and c.sd_sid = ANY(%(test_sd_sids)s)", {'test_sd_sids': list(self.test_study_ids)}
        if level == OBJECT_LEVEL:
            return " and c.sd_oid = ANY(%(test_sd_oids)s)", {'test_sd_oids': list(self.test_object_ids)}
        raise ValueError(f"Unknown entity level: {level}")


def load_test_id_lists(db_manager) -> Tuple[List[str], List[str]]:
    """
    Read the fixed test study and object id lists.

    Returns:
        (study_ids, object_ids)
    """
    schema = settings.TEST_LIST_SCHEMA
    study_ids = [row[0] for row in db_manager.execute_query(
        f"SELECT sd_sid FROM {schema}.test_study_list ORDER BY sd_sid")]
    object_ids = [row[0] for row in db_manager.execute_query(
        f"SELECT sd_oid FROM {schema}.test_object_list ORDER BY sd_oid")]
    logger.info(f"Loaded {len(study_ids)} test study ids and {len(object_ids)} test object ids")
    return study_ids, object_ids
