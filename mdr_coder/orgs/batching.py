"""
Range Batch Executor
====================
Applies set-based statements over an id range in fixed-size windows.

- Ranges no wider than the batch size run as one statement
- Wider ranges run as windows [start, start + batch_size), ascending
- Errors are caught, logged and returned in a BatchResult; they never
  propagate, so one failing operation does not stop the coding run
- An empty table (min/max id NULL) is a no-op
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from mdr_coder import settings

logger = logging.getLogger(__name__)

WINDOW_TEMPLATE = "{label} - {count} in records {start} to {end}"
SINGLE_TEMPLATE = "{label} - {count} done as a single query"


@dataclass(frozen=True)
class IdWindow:
    """Half-open id window [start, end); display_end is clamped to the max id."""
    start: int
    end: int
    display_end: int

    def as_sql(self, alias: str = 'c') -> str:
        return f" and {alias}.id >= %(window_start)s and {alias}.id < %(window_end)s"

    def as_params(self) -> Dict[str, int]:
        return {'window_start': self.start, 'window_end': self.end}


@dataclass
class BatchResult:
    """Outcome of one batched operation"""
    label: str
    rows_affected: int = 0
    windows_run: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors


def iter_windows(min_id: int, max_id: int, batch_size: int) -> Iterator[IdWindow]:
    """Yield ascending windows covering [min_id, max_id]."""
    for start in range(min_id, max_id + 1, batch_size):
        end = start + batch_size
        yield IdWindow(start, end, end if end < max_id else max_id)


class RangeBatchExecutor:
    """
    Runs a unit of work once or per id window, isolating failures.

    With isolate_windows False a failure abandons the remaining windows of
    that operation; with True the failure is recorded and the next window
    still runs.
    """

    def __init__(self, db_manager, isolate_windows: Optional[bool] = None):
        self.db_manager = db_manager
        self.isolate_windows = settings.ISOLATE_WINDOWS if isolate_windows is None else isolate_windows

    def apply(
        self,
        min_id: Optional[int],
        max_id: Optional[int],
        batch_size: int,
        sql: str,
        label: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> BatchResult:
        """
        Execute ``sql`` over the id range.

        The statement must end in a WHERE clause on the entity alias ``c``
        so the window predicate can be appended.
        """
        return self.run(min_id, max_id, batch_size, self._statement_work(sql, params), label)

    def apply_to_table(
        self,
        table_name: str,
        batch_size: int,
        sql: str,
        label: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> BatchResult:
        """apply() over the id range of ``table_name``, read inside the isolation boundary."""
        return self.run_over_table(table_name, batch_size, self._statement_work(sql, params), label)

    def run_over_table(
        self,
        table_name: str,
        batch_size: int,
        work: Callable[[Optional[IdWindow]], int],
        label: str,
        **templates: str,
    ) -> BatchResult:
        """run() over the id range of ``table_name``."""
        try:
            min_id, max_id = self.db_manager.get_id_range(table_name)
        except Exception as e:
            result = BatchResult(label=label)
            self._record_failure(result, label, None, e)
            return result
        return self.run(min_id, max_id, batch_size, work, label, **templates)

    def _statement_work(self, sql: str, params: Optional[Dict[str, Any]]) -> Callable[[Optional[IdWindow]], int]:
        base_params = dict(params or {})

        def execute(window: Optional[IdWindow]) -> int:
            if window is None:
                return self.db_manager.execute_update(sql, base_params)
            return self.db_manager.execute_update(
                sql + window.as_sql(), {**base_params, **window.as_params()}
            )

        return execute

    def run(
        self,
        min_id: Optional[int],
        max_id: Optional[int],
        batch_size: int,
        work: Callable[[Optional[IdWindow]], int],
        label: str,
        window_template: str = WINDOW_TEMPLATE,
        single_template: str = SINGLE_TEMPLATE,
    ) -> BatchResult:
        """
        Call ``work`` once (with None) or once per window, ascending.

        Args:
            work: returns the number of rows it affected
            window_template / single_template: progress line formats, given
                label, count and (per window) start and end
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        result = BatchResult(label=label)

        if min_id is None or max_id is None:
            logger.info(f"{label} - no records to process")
            return result

        if max_id - min_id <= batch_size:
            try:
                count = work(None)
            except Exception as e:
                self._record_failure(result, label, None, e)
                return result
            result.rows_affected += count
            result.windows_run = 1
            logger.info(single_template.format(label=label, count=count))
            return result

        for window in iter_windows(min_id, max_id, batch_size):
            try:
                count = work(window)
            except Exception as e:
                self._record_failure(result, label, window, e)
                if self.isolate_windows:
                    continue
                return result
            result.rows_affected += count
            result.windows_run += 1
            logger.info(window_template.format(
                label=label, count=count, start=window.start, end=window.display_end))

        return result

    @staticmethod
    def _record_failure(result: BatchResult, label: str, window: Optional[IdWindow], error: Exception) -> None:
        if window is None:
            message = f"In {label}: {error}"
        else:
            message = f"In {label} (records {window.start} to {window.display_end}): {error}"
        logger.error(message)
        result.errors.append(message)
