"""Job orchestration for batch onboarding uploads.

Each data row runs through validation, duplicate checking and provisioning
as its own unit of work and always ends in exactly one RowOutcome. There is
no transaction around the whole file: good rows stay committed regardless
of what happens to their neighbours.
"""
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.upload_job import EntityKind, ErrorCode, JobStatus, UploadJob
from app.services import job_store
from app.services.csv_parser import (
    CsvFormatError,
    ParsedRow,
    column_map,
    count_data_rows,
    open_rows,
)
from app.services.duplicate_checker import check_duplicates
from app.services.notifications import NotificationService
from app.services.progress import publish_progress
from app.services.provisioner import ProvisioningError, provision_member
from app.services.row_validator import validate_row

settings = get_settings()
logger = logging.getLogger(__name__)


class TenantContext(BaseModel):
    """Tenant and initiating user resolved by the auth layer."""

    tenant_id: int
    user_id: int


def row_snapshot(row: ParsedRow, kind: EntityKind) -> Dict[str, Optional[str]]:
    """Original row values keyed by header label, for re-display and correction."""
    return {label: row.values.get(field) for label, field in column_map(kind).items()}


def job_summary(job: UploadJob) -> Dict[str, Any]:
    return {
        "job_id": str(job.id),
        "filename": job.filename,
        "entity_kind": job.entity_kind,
        "status": job.status,
        "total_rows": job.total_rows,
        "successful_rows": job.successful_rows,
        "failed_rows": job.failed_rows,
        "error_summary": job.error_summary,
    }


def start_job(db: Session, ctx: TenantContext, kind: EntityKind, filename: str) -> UploadJob:
    """Create the UploadJob record for an accepted file."""
    job = job_store.create_job(db, ctx.tenant_id, ctx.user_id, kind, filename)
    logger.info(
        f"🆔 Upload job {job.id} created: tenant={ctx.tenant_id}, user={ctx.user_id}, "
        f"kind={job.entity_kind}, filename={filename}"
    )
    return job


def process_row(
    db: Session,
    job_id,
    tenant_id: int,
    row: ParsedRow,
    kind: EntityKind,
    notifier: Optional[NotificationService] = None,
) -> bool:
    """
    Run one row through validation, duplicate checking and provisioning.

    Returns:
        True if the row was provisioned, False if it was recorded as FAILED
    """
    snapshot = row_snapshot(row, kind)

    validation = validate_row(row, kind)
    if not validation.accepted:
        code = ErrorCode.PARSE if row.error else ErrorCode.VALIDATION
        logger.info(f"Row {row.row_number} rejected ({code.value}): {validation.error}")
        job_store.record_outcome(
            db, job_id, row.row_number, snapshot,
            error_message=validation.error, error_code=code,
        )
        return False

    record = validation.record
    try:
        check = check_duplicates(db, record, tenant_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Duplicate check failed for row {row.row_number}: {e}")
        job_store.record_outcome(
            db, job_id, row.row_number, snapshot,
            error_message=f"Duplicate check failed: {e}",
            error_code=ErrorCode.PROVISIONING,
        )
        return False

    if not check.accepted:
        logger.info(f"Row {row.row_number} rejected (CONFLICT): {check.reason}")
        job_store.record_outcome(
            db, job_id, row.row_number, snapshot,
            error_message=check.reason, error_code=ErrorCode.CONFLICT,
        )
        return False

    try:
        result = provision_member(db, record, tenant_id, notifier)
    except ProvisioningError as e:
        job_store.record_outcome(
            db, job_id, row.row_number, snapshot,
            error_message=str(e), error_code=ErrorCode.PROVISIONING,
        )
        return False

    job_store.record_outcome(
        db, job_id, row.row_number, snapshot,
        entity_id=result.entity_id, account_id=result.account_id,
        welcome_sent=result.notified,
    )
    return True


def process_job(
    db: Session,
    job: UploadJob,
    content: bytes,
    notifier: Optional[NotificationService] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> UploadJob:
    """
    Drive a PROCESSING job to a terminal status.

    Args:
        db: Database session
        job: Job created by start_job
        content: Raw uploaded file content
        notifier: Notification service for welcome messages and the report
        should_stop: Polled between rows; returning True stops after the current row

    Returns:
        The job in COMPLETED or PARSE_FAILED status
    """
    job_id = job.id
    tenant_id = job.tenant_id
    kind = EntityKind(job.entity_kind)

    try:
        rows = open_rows(content, kind)
    except CsvFormatError as e:
        logger.warning(f"❌ File rejected for job {job_id}: {e}")
        job = job_store.mark_parse_failed(db, job, str(e))
        publish_progress(job_id, 0, 0, 0, 0, job.status, str(e))
        return job

    total = count_data_rows(content)
    job.total_rows = total
    db.commit()
    logger.info(f"✅ Header accepted for job {job_id}: {total} data rows")

    processed = successful = failed = 0
    interval = max(settings.progress_interval, 1)
    error_summary = None

    try:
        for row in rows:
            if process_row(db, job_id, tenant_id, row, kind, notifier):
                successful += 1
            else:
                failed += 1
            processed += 1

            if processed % interval == 0:
                job_store.update_progress(db, job, successful, failed)
                publish_progress(
                    job_id, processed, total, successful, failed, JobStatus.PROCESSING.value
                )
                logger.info(f"📊 Job {job_id} progress: {processed}/{total} rows")

            if should_stop is not None and should_stop():
                error_summary = f"Cancelled after {processed} of {total} rows"
                logger.warning(f"🛑 Job {job_id} cancelled after row {row.row_number}")
                break
    except Exception as e:
        logger.error(f"💥 Job {job_id} stopped after {processed} rows: {e}", exc_info=True)
        db.rollback()
        job_store.finalize_job(
            db, job, error_summary=f"Processing stopped after {processed} rows: {e}"
        )
        publish_progress(
            job_id, job.total_rows, job.total_rows, job.successful_rows,
            job.failed_rows, job.status, job.error_summary,
        )
        raise

    job = job_store.finalize_job(db, job, error_summary=error_summary)
    logger.info(
        f"🏁 Job {job_id} completed: total={job.total_rows}, "
        f"successful={job.successful_rows}, failed={job.failed_rows}"
    )
    publish_progress(
        job_id, job.total_rows, job.total_rows, job.successful_rows,
        job.failed_rows, job.status,
    )

    if notifier is not None:
        try:
            notifier.send_upload_report(job.initiated_by, job_summary(job))
        except Exception as e:
            logger.error(f"Failed to send upload report for job {job_id}: {e}")

    return job


def run_upload(
    db: Session,
    ctx: TenantContext,
    kind: EntityKind,
    filename: str,
    content: bytes,
    notifier: Optional[NotificationService] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> UploadJob:
    """Create a job for an uploaded file and process it to completion."""
    job = start_job(db, ctx, kind, filename)
    return process_job(db, job, content, notifier=notifier, should_stop=should_stop)
