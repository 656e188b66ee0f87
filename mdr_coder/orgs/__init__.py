"""
MDR Organisation Coder - Organisation coding module
====================================================
Codes free-text organisation names in study and object metadata against the
organisation registry.

Provides:
- Id-range batched execution of set-based updates
- The lowercase alias name index
- Two-pass (match, backfill) coding of eight entity tables
- Sponsor + funder duplicate merging
- Unmatched-name review lists and coverage feedback
"""

from mdr_coder.orgs.batching import BatchResult, IdWindow, RangeBatchExecutor
from mdr_coder.orgs.entities import ALL_KINDS, EntityKind, get_entity_kind
from mdr_coder.orgs.feedback import CoverageReport, FeedbackReporter
from mdr_coder.orgs.merger import DuplicateContributorMerger, MergeResult
from mdr_coder.orgs.name_index import NameIndex
from mdr_coder.orgs.org_coder import OrgCodingEngine, OrgCodingSummary, run_org_coding
from mdr_coder.orgs.resolver import ResolutionResult, TwoPassResolver
from mdr_coder.orgs.scope import CodingScope, ScopeMode
from mdr_coder.orgs.unmatched import UnmatchedNameAggregator

__all__ = [
    'BatchResult',
    'IdWindow',
    'RangeBatchExecutor',
    'ALL_KINDS',
    'EntityKind',
    'get_entity_kind',
    'CoverageReport',
    'FeedbackReporter',
    'DuplicateContributorMerger',
    'MergeResult',
    'NameIndex',
    'OrgCodingEngine',
    'OrgCodingSummary',
    'run_org_coding',
    'ResolutionResult',
    'TwoPassResolver',
    'CodingScope',
    'ScopeMode',
    'UnmatchedNameAggregator',
]
