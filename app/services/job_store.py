"""Durable store for upload jobs and their row outcomes."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.models.upload_job import (
    EntityKind,
    ErrorCode,
    JobStatus,
    OutcomeStatus,
    RowOutcome,
    UploadJob,
)

logger = logging.getLogger(__name__)


def create_job(
    db: Session, tenant_id: int, initiated_by: int, kind: EntityKind, filename: str
) -> UploadJob:
    """Create a job in PROCESSING with no rows counted yet."""
    job = UploadJob(
        tenant_id=tenant_id,
        initiated_by=initiated_by,
        entity_kind=EntityKind(kind).value,
        filename=filename,
        status=JobStatus.PROCESSING.value,
        total_rows=0,
        created_at=datetime.utcnow(),
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def record_outcome(
    db: Session,
    job_id: UUID,
    row_number: int,
    row_data: Dict[str, Any],
    entity_id: Optional[int] = None,
    account_id: Optional[int] = None,
    error_message: Optional[str] = None,
    error_code: Optional[ErrorCode] = None,
    welcome_sent: Optional[bool] = None,
) -> RowOutcome:
    """
    Persist the single outcome of a data row.

    A row with an error message is FAILED, otherwise SUCCESS. Outcomes are
    never updated afterwards.
    """
    failed = error_message is not None
    outcome = RowOutcome(
        job_id=job_id,
        row_number=row_number,
        status=(OutcomeStatus.FAILED if failed else OutcomeStatus.SUCCESS).value,
        entity_id=None if failed else entity_id,
        account_id=None if failed else account_id,
        row_data=dict(row_data),
        error_message=error_message,
        error_code=ErrorCode(error_code).value if failed and error_code else None,
        welcome_sent=None if failed else welcome_sent,
    )
    db.add(outcome)
    db.commit()
    return outcome


def update_progress(db: Session, job: UploadJob, successful: int, failed: int) -> None:
    """Persist running counters while a job is processing."""
    job.successful_rows = successful
    job.failed_rows = failed
    db.commit()


def count_outcomes(db: Session, job_id: UUID) -> Dict[str, int]:
    rows = (
        db.query(RowOutcome.status, func.count(RowOutcome.id))
        .filter(RowOutcome.job_id == job_id)
        .group_by(RowOutcome.status)
        .all()
    )
    counts = {status.value: 0 for status in OutcomeStatus}
    counts.update({status: count for status, count in rows})
    return counts


def finalize_job(db: Session, job: UploadJob, error_summary: Optional[str] = None) -> UploadJob:
    """
    Mark a job COMPLETED with counts taken from its recorded outcomes.

    total_rows is set to the number of recorded outcomes, so successful and
    failed rows always add up to it, even when processing stopped early.
    """
    counts = count_outcomes(db, job.id)
    job.successful_rows = counts[OutcomeStatus.SUCCESS.value]
    job.failed_rows = counts[OutcomeStatus.FAILED.value]
    job.total_rows = job.successful_rows + job.failed_rows
    job.status = JobStatus.COMPLETED.value
    job.error_summary = error_summary
    job.completed_at = datetime.utcnow()
    db.commit()
    db.refresh(job)
    return job


def mark_parse_failed(db: Session, job: UploadJob, message: str) -> UploadJob:
    """Terminate a job whose file was rejected before any row was read."""
    job.status = JobStatus.PARSE_FAILED.value
    job.error_summary = message
    job.total_rows = 0
    job.successful_rows = 0
    job.failed_rows = 0
    job.completed_at = datetime.utcnow()
    db.commit()
    db.refresh(job)
    return job


def get_job(db: Session, job_id: UUID, tenant_id: int) -> Optional[UploadJob]:
    """Fetch a tenant's job with its outcomes ordered by row number."""
    return (
        db.query(UploadJob)
        .options(selectinload(UploadJob.outcomes))
        .filter(UploadJob.id == job_id, UploadJob.tenant_id == tenant_id)
        .first()
    )


def list_jobs(
    db: Session,
    tenant_id: int,
    kind: Optional[EntityKind] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[UploadJob]:
    """
    List a tenant's jobs, newest first.

    Order is only defined down to created_at resolution. Jobs created in
    the same instant are ordered by id, which keeps pages stable but says
    nothing about which came first.
    """
    query = db.query(UploadJob).filter(UploadJob.tenant_id == tenant_id)
    if kind is not None:
        query = query.filter(UploadJob.entity_kind == EntityKind(kind).value)
    return (
        query.order_by(UploadJob.created_at.desc(), UploadJob.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def failed_outcomes(db: Session, job_id: UUID) -> List[RowOutcome]:
    return (
        db.query(RowOutcome)
        .filter(
            RowOutcome.job_id == job_id,
            RowOutcome.status == OutcomeStatus.FAILED.value,
        )
        .order_by(RowOutcome.row_number)
        .all()
    )
