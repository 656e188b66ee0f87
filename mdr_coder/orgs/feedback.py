"""Coverage feedback for coded entity tables."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from mdr_coder.orgs.entities import EntityKind

logger = logging.getLogger(__name__)


def _percentage(part: int, total: int) -> float:
    return 100.0 * part / total if total else 0.0


@dataclass
class CoverageReport:
    table: str
    total: int
    coded: int
    ror_coded: Optional[int] = None

    @property
    def coded_pct(self) -> float:
        return _percentage(self.coded, self.total)

    @property
    def ror_coded_pct(self) -> Optional[float]:
        if self.ror_coded is None:
            return None
        return _percentage(self.ror_coded, self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'table': self.table,
            'total': self.total,
            'coded': self.coded,
            'coded_pct': round(self.coded_pct, 1),
            'ror_coded': self.ror_coded,
            'ror_coded_pct': None if self.ror_coded is None else round(self.ror_coded_pct, 1),
        }


class FeedbackReporter:
    """Counts coded rows over the whole table, whatever the run scope."""

    def __init__(self, db_manager, data_schema: Optional[str] = None):
        self.db_manager = db_manager
        self.data_schema = data_schema

    def report(self, kind: EntityKind) -> CoverageReport:
        table = kind.qualified_table(self.data_schema)
        total = self.db_manager.get_table_row_count(table)
        coded = self.db_manager.get_field_count(table, kind.id_field)
        report = CoverageReport(table=table, total=total, coded=coded)
        logger.info(f"{coded} records, from {total}, {report.coded_pct:.1f} %, "
                    f"have MDR coded organisations in {table}")

        if kind.code_field:
            report.ror_coded = self.db_manager.get_field_count(table, kind.code_field)
            logger.info(f"{report.ror_coded} records, from {total}, {report.ror_coded_pct:.1f} %, "
                        f"have ROR coded organisations in {table}")
        return report
