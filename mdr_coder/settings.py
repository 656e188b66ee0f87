"""
Coding settings loaded from config/coding_config.yml

Values missing from the file (or a missing file) fall back to the defaults
the coder has always used against the MDR databases.
"""

import os
from pathlib import Path
from typing import Any, Dict

import yaml


def _load_coding_config() -> Dict[str, Any]:
    """Load coding configuration from YAML file."""
    default_path = Path(__file__).parent.parent / 'config' / 'coding_config.yml'
    config_path = Path(os.environ.get('CODING_CONFIG_PATH', default_path))
    if config_path.exists():
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    return {}


CODING_CONFIG = _load_coding_config()

_schemas = CODING_CONFIG.get('schemas', {})
DATA_SCHEMA = _schemas.get('data', 'ad')
REGISTRY_SCHEMA = _schemas.get('registry', 'context_ctx')
WORK_SCHEMA = _schemas.get('work', 'ad')
TEST_LIST_SCHEMA = _schemas.get('test_lists', 'mn')

_batching = CODING_CONFIG.get('batching', {})
RESOLVE_BATCH_SIZE = _batching.get('resolve_batch_size', 200000)
MERGE_BATCH_SIZE = _batching.get('merge_batch_size', 100000)
ISOLATE_WINDOWS = _batching.get('isolate_windows', False)

_name_index = CODING_CONFIG.get('name_index', {})
NON_CANONICAL_QUALIFIER_ID = _name_index.get('non_canonical_qualifier_id', 10)
COLLISION_POLICY = _name_index.get('collision_policy', 'reject')

_roles = CODING_CONFIG.get('contributor_roles', {})
SPONSOR_ROLE_ID = _roles.get('sponsor', 54)
FUNDER_ROLE_ID = _roles.get('funder', 58)
MERGED_ROLE_ID = _roles.get('sponsor_and_funder', 112)
SELF_REPORTED_ROLE_ID = _roles.get('self_reported', 70)
