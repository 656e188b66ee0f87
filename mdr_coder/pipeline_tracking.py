"""
Pipeline Tracking Module
========================
Records each coding run in the pipeline_runs table.

Features:
- Context manager for automatic run tracking
- Metrics update helper
- Status management (RUNNING, SUCCESS, FAILED, PARTIAL)

Usage:
    from mdr_coder.pipeline_tracking import track_pipeline_run, update_run_metrics

    with track_pipeline_run(db_manager, "org_coding", scope="unmatched", source_id=100120) as run_id:
        result = do_work()
        update_run_metrics(db_manager, run_id, rows_coded=result['rows_coded'])
"""

import json
import logging
import uuid
from contextlib import contextmanager
from typing import Optional, Dict, Any, Generator

logger = logging.getLogger(__name__)


@contextmanager
def track_pipeline_run(
    db_manager,
    pipeline_name: str,
    scope: Optional[str] = None,
    source_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> Generator[str, None, None]:
    """
    Context manager for tracking a pipeline run.

    Creates a run record on entry and updates status on exit.
    On success: status = 'SUCCESS' (unless already marked PARTIAL)
    On exception: status = 'FAILED' with error_message

    Args:
        db_manager: DatabaseManager instance
        pipeline_name: Name of the pipeline, e.g. 'org_coding'
        scope: Scope label of the run ('unmatched', 'all', 'test data')
        source_id: Data source being coded
        metadata: Additional JSON metadata to store

    Yields:
        run_id: UUID string of the created run record
    """
    run_id = str(uuid.uuid4())
    metadata_json = json.dumps(metadata) if metadata else None

    try:
        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO pipeline_runs (
                        run_id, pipeline_name, scope, source_id, metadata
                    )
                    VALUES (%s, %s, %s, %s, %s::jsonb)
                    """,
                    (run_id, pipeline_name, scope, source_id, metadata_json)
                )
        logger.info(f"Pipeline run started: {pipeline_name} (run_id={run_id[:8]}...)")
    except Exception as e:
        logger.error(f"Failed to create pipeline run record: {e}")
        raise

    try:
        yield run_id

        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE pipeline_runs
                    SET completed_at = NOW(),
                        status = CASE WHEN status = 'PARTIAL' THEN status ELSE 'SUCCESS' END
                    WHERE run_id = %s
                    """,
                    (run_id,)
                )
        logger.info(f"Pipeline run completed: {pipeline_name} (run_id={run_id[:8]}...)")

    except Exception as e:
        error_msg = str(e)[:1000]  # Truncate long errors
        try:
            with db_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE pipeline_runs
                        SET completed_at = NOW(),
                            status = 'FAILED',
                            error_message = %s
                        WHERE run_id = %s
                        """,
                        (error_msg, run_id)
                    )
            logger.error(f"Pipeline run failed: {pipeline_name} (run_id={run_id[:8]}...) - {error_msg}")
        except Exception as db_error:
            logger.error(f"Failed to update pipeline run status: {db_error}")
        raise


def update_run_metrics(
    db_manager,
    run_id: str,
    rows_coded: Optional[int] = None,
    records_merged: Optional[int] = None,
    records_deleted: Optional[int] = None,
    names_for_review: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Update metrics for a pipeline run.

    Only non-None values are updated.
    """
    updates = []
    values = []

    if rows_coded is not None:
        updates.append("rows_coded = %s")
        values.append(rows_coded)

    if records_merged is not None:
        updates.append("records_merged = %s")
        values.append(records_merged)

    if records_deleted is not None:
        updates.append("records_deleted = %s")
        values.append(records_deleted)

    if names_for_review is not None:
        updates.append("names_for_review = %s")
        values.append(names_for_review)

    if metadata is not None:
        # Merge with existing metadata using JSONB concatenation
        updates.append("metadata = COALESCE(metadata, '{}'::jsonb) || %s::jsonb")
        values.append(json.dumps(metadata))

    if not updates:
        return  # Nothing to update

    values.append(run_id)
    set_clause = ", ".join(updates)

    try:
        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE pipeline_runs SET {set_clause} WHERE run_id = %s",
                    tuple(values)
                )
    except Exception as e:
        logger.warning(f"Failed to update run metrics: {e}")


def mark_run_partial(
    db_manager,
    run_id: str,
    error_message: Optional[str] = None
) -> None:
    """
    Mark a pipeline run as PARTIAL (some steps failed, the rest completed).

    Args:
        db_manager: DatabaseManager instance
        run_id: UUID string of the run
        error_message: Optional description of the failures
    """
    try:
        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE pipeline_runs
                    SET status = 'PARTIAL',
                        error_message = COALESCE(error_message, '') || %s
                    WHERE run_id = %s
                    """,
                    (error_message or '', run_id)
                )
        logger.warning(f"Pipeline run marked as PARTIAL: {run_id[:8]}...")
    except Exception as e:
        logger.error(f"Failed to mark run as partial: {e}")
