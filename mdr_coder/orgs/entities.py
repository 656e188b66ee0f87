"""
Entity kinds carrying organisation names to be coded.

Each descriptor names the table, the free-text name column, the resolved id
column and (where the table has one) the ROR code column. The resolver, the
reporter and the unmatched-name aggregator are all driven from these.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from mdr_coder import settings
from mdr_coder.orgs.scope import OBJECT_LEVEL, STUDY_LEVEL


@dataclass(frozen=True)
class EntityKind:
    key: str
    table: str
    name_field: str
    id_field: str
    code_field: Optional[str]
    level: str
    description: str
    subject: str = 'orgs'
    review_filter: str = ''

    def qualified_table(self, schema: Optional[str] = None) -> str:
        return f"{schema or settings.DATA_SCHEMA}.{self.table}"


STUDY_IDENTIFIERS = EntityKind(
    key='study_identifiers',
    table='study_identifiers',
    name_field='source',
    id_field='source_id',
    code_field='source_ror_id',
    level=STUDY_LEVEL,
    description='study identifiers',
    subject='sources',
)

STUDY_ORGANISATIONS = EntityKind(
    key='study_organisations',
    table='study_organisations',
    name_field='organisation_name',
    id_field='organisation_id',
    code_field='organisation_ror_id',
    level=STUDY_LEVEL,
    description='study organisations',
    # self-reported contributors are not expected to be in the registry
    review_filter=f" and contrib_type_id <> {settings.SELF_REPORTED_ROLE_ID}",
)

STUDY_PEOPLE = EntityKind(
    key='study_people',
    table='study_people',
    name_field='organisation_name',
    id_field='organisation_id',
    code_field='organisation_ror_id',
    level=STUDY_LEVEL,
    description='study people',
)

OBJECT_IDENTIFIERS = EntityKind(
    key='object_identifiers',
    table='object_identifiers',
    name_field='source',
    id_field='source_id',
    code_field='source_ror_id',
    level=OBJECT_LEVEL,
    description='object identifiers',
    subject='sources',
)

OBJECT_ORGANISATIONS = EntityKind(
    key='object_organisations',
    table='object_organisations',
    name_field='organisation_name',
    id_field='organisation_id',
    code_field='organisation_ror_id',
    level=OBJECT_LEVEL,
    description='object organisations',
)

OBJECT_PEOPLE = EntityKind(
    key='object_people',
    table='object_people',
    name_field='organisation_name',
    id_field='organisation_id',
    code_field='organisation_ror_id',
    level=OBJECT_LEVEL,
    description='object people',
)

DATA_OBJECTS = EntityKind(
    key='data_objects',
    table='data_objects',
    name_field='managing_org',
    id_field='managing_org_id',
    code_field='managing_org_ror_id',
    level=OBJECT_LEVEL,
    description='data objects',
    subject='managing orgs',
)

OBJECT_INSTANCES = EntityKind(
    key='object_instances',
    table='object_instances',
    name_field='system',
    id_field='system_id',
    code_field=None,
    level=OBJECT_LEVEL,
    description='object instances',
    subject='systems',
)

STUDY_KINDS: Tuple[EntityKind, ...] = (STUDY_IDENTIFIERS, STUDY_ORGANISATIONS, STUDY_PEOPLE)
OBJECT_KINDS: Tuple[EntityKind, ...] = (
    OBJECT_IDENTIFIERS, OBJECT_ORGANISATIONS, OBJECT_PEOPLE, DATA_OBJECTS, OBJECT_INSTANCES,
)
ALL_KINDS: Tuple[EntityKind, ...] = STUDY_KINDS + OBJECT_KINDS

KINDS_BY_KEY: Dict[str, EntityKind] = {kind.key: kind for kind in ALL_KINDS}


def get_entity_kind(key: str) -> EntityKind:
    """Look up an entity kind by its key (the table name)."""
    try:
        return KINDS_BY_KEY[key]
    except KeyError:
        raise ValueError(f"Unknown entity kind: {key}. Expected one of {sorted(KINDS_BY_KEY)}") from None
