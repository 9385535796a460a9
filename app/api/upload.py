"""Onboarding upload API endpoints."""
import asyncio
import csv
import json
import logging
from enum import Enum
from io import StringIO
from pathlib import Path
from typing import Optional
from uuid import UUID

import redis
from anyio.from_thread import run as run_from_thread
from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response, StreamingResponse
from sqlalchemy.orm import Session

from app.api.deps import get_tenant_context
from app.config import get_settings
from app.database import get_db
from app.models.account import PENDING_SETUP, Account
from app.models.upload_job import EntityKind, JobStatus, OutcomeStatus
from app.schemas.upload import (
    CancelResponse,
    ResendInvitationResponse,
    RowFailure,
    UploadJobDetailResponse,
    UploadJobListResponse,
    UploadJobResponse,
    UploadQueuedResponse,
    UploadSummaryResponse,
)
from app.services import job_store
from app.services.accounts import mark_invited, reset_temporary_password
from app.services.csv_parser import build_template, expected_columns
from app.services.notifications import NotificationService, get_notifier
from app.services.onboarding import TenantContext, run_upload, start_job
from app.services.profiles import member_full_name
from app.services.progress import channel_name, request_cancel
from app.tasks.import_tasks import process_upload_job

router = APIRouter(prefix="/api/onboarding", tags=["onboarding"])

settings = get_settings()
logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 8192


class MemberKind(str, Enum):
    """Path segment naming the kind of member being uploaded."""

    students = "students"
    trainers = "trainers"

    @property
    def entity_kind(self) -> EntityKind:
        return EntityKind.STUDENT if self is MemberKind.students else EntityKind.TRAINER


async def read_upload(file: UploadFile) -> bytes:
    """
    Read an uploaded CSV into memory, enforcing type and size limits.

    Raises:
        HTTPException: 400 for non-CSV or empty files, 413 for oversize files
    """
    if not file.filename or not file.filename.lower().endswith(".csv"):
        logger.warning(f"❌ Invalid file type: {file.filename}")
        raise HTTPException(status_code=400, detail="Only CSV files are allowed")

    chunks = []
    size = 0
    chunk = await file.read(READ_CHUNK_BYTES)
    while chunk:
        size += len(chunk)
        if size > settings.max_upload_bytes:
            logger.warning(f"❌ File too large: more than {settings.max_upload_bytes} bytes")
            raise HTTPException(
                status_code=413,
                detail=f"File too large (max {settings.max_upload_bytes} bytes)",
            )
        chunks.append(chunk)
        chunk = await file.read(READ_CHUNK_BYTES)

    if size == 0:
        raise HTTPException(status_code=400, detail="File is empty")
    return b"".join(chunks)


def _get_job_or_404(db: Session, job_id: UUID, ctx: TenantContext):
    job = job_store.get_job(db, job_id, ctx.tenant_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.get("/jobs", response_model=UploadJobListResponse)
def list_upload_jobs(
    kind: Optional[MemberKind] = Query(None, description="Filter by member kind"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Upload history for the caller's tenant, newest first."""
    jobs = job_store.list_jobs(
        db,
        ctx.tenant_id,
        kind=kind.entity_kind if kind else None,
        limit=limit,
        offset=offset,
    )
    return UploadJobListResponse(
        items=[UploadJobResponse.model_validate(job) for job in jobs],
        limit=limit,
        offset=offset,
    )


@router.get("/jobs/{job_id}", response_model=UploadJobDetailResponse)
def get_upload_job(
    job_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Get an upload job with every row outcome."""
    return UploadJobDetailResponse.model_validate(_get_job_or_404(db, job_id, ctx))


@router.get("/jobs/{job_id}/failures.csv")
def download_failed_rows(
    job_id: UUID,
    include_errors: bool = Query(False, description="Append row number and error columns"),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Export the failed rows of a job in upload format.

    Without include_errors the file can be corrected and uploaded again as-is.
    """
    job = _get_job_or_404(db, job_id, ctx)
    columns = expected_columns(EntityKind(job.entity_kind))

    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns + (["Row Number", "Error"] if include_errors else []))
    for outcome in job_store.failed_outcomes(db, job.id):
        values = [(outcome.row_data or {}).get(label) or "" for label in columns]
        if include_errors:
            values += [outcome.row_number, outcome.error_message]
        writer.writerow(values)

    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=failed_rows_{job.id}.csv"},
    )


@router.get("/jobs/{job_id}/stream")
async def stream_progress(
    job_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Server-Sent Events (SSE) endpoint for real-time progress streaming.

    Streams the progress events published by the worker processing the job
    and closes once the job reaches a terminal status.
    """
    job = _get_job_or_404(db, job_id, ctx)
    if job.status != JobStatus.PROCESSING.value:
        raise HTTPException(status_code=409, detail=f"Job already {job.status}")

    async def event_generator():
        """Generate SSE events from Redis pub/sub."""
        redis_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        pubsub = redis_client.pubsub()
        pubsub.subscribe(channel_name(str(job_id)))

        try:
            while True:
                message = pubsub.get_message(timeout=1.0)

                if message and message["type"] == "message":
                    data = json.loads(message["data"])
                    yield f"data: {json.dumps(data)}\n\n"

                    if data.get("status") != JobStatus.PROCESSING.value:
                        break

                await asyncio.sleep(0.1)

        except redis.RedisError as e:
            logger.warning(f"SSE stream error for job {job_id}: {str(e)}")
            yield f"data: {json.dumps({'status': 'error', 'error': 'Stream error'})}\n\n"

        finally:
            pubsub.unsubscribe(channel_name(str(job_id)))
            redis_client.close()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@router.post("/jobs/{job_id}/cancel", response_model=CancelResponse)
def cancel_upload_job(
    job_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Ask a background job to stop after the row it is processing."""
    job = _get_job_or_404(db, job_id, ctx)
    if job.status != JobStatus.PROCESSING.value:
        raise HTTPException(status_code=409, detail=f"Job already {job.status}")

    requested = request_cancel(str(job.id))
    return CancelResponse(
        job_id=str(job.id),
        cancel_requested=requested,
        message="Job will stop after the current row" if requested else "Cancellation unavailable",
    )


@router.post("/accounts/{account_id}/resend-invitation", response_model=ResendInvitationResponse)
def resend_invitation(
    account_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
):
    """Issue a new temporary password and resend the welcome message."""
    account = (
        db.query(Account)
        .filter(Account.id == account_id, Account.tenant_id == ctx.tenant_id)
        .first()
    )
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    if account.account_status != PENDING_SETUP:
        raise HTTPException(
            status_code=409, detail="User is already active or not in pending state"
        )

    role = account.roles[0].name if account.roles else ""
    full_name = member_full_name(db, account.id) or account.email

    # The new password only replaces the old one once the message is out
    temporary_password = reset_temporary_password(db, account)
    try:
        notifier.send_welcome(account.email, full_name, temporary_password, role)
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to resend welcome message to {account.email}: {e}")
        raise HTTPException(status_code=502, detail="Failed to send invitation")

    mark_invited(db, account)

    return ResendInvitationResponse(account_id=account.id, email=account.email)


@router.get("/{kind}/template")
def download_template(kind: MemberKind):
    """Download the CSV template for a member kind."""
    singular = kind.entity_kind.value.lower()
    return Response(
        content=build_template(kind.entity_kind),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={singular}_template.csv"},
    )


@router.post("/{kind}/upload", response_model=UploadSummaryResponse)
async def upload_members(
    kind: MemberKind,
    request: Request,
    file: UploadFile = File(...),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
):
    """
    Upload a CSV of members and process it before responding.

    Every data row gets its own outcome; the response carries the counts and
    the failed rows with their original values so they can be fixed and
    uploaded again. A file whose header does not match the template is
    rejected with 422 and no row is processed.
    """
    logger.info(f"📁 Starting {kind.value} upload: filename={file.filename}, tenant={ctx.tenant_id}")
    content = await read_upload(file)

    def client_gone() -> bool:
        return run_from_thread(request.is_disconnected)

    job = await run_in_threadpool(
        run_upload,
        db,
        ctx,
        kind.entity_kind,
        file.filename,
        content,
        notifier,
        client_gone,
    )

    if job.status == JobStatus.PARSE_FAILED.value:
        raise HTTPException(
            status_code=422,
            detail={"job_id": str(job.id), "status": job.status, "error": job.error_summary},
        )

    summary = UploadSummaryResponse.model_validate(job)
    summary.errors = [
        RowFailure.model_validate(outcome)
        for outcome in job.outcomes
        if outcome.status == OutcomeStatus.FAILED.value
    ]
    return summary


@router.post("/{kind}/upload/background", response_model=UploadQueuedResponse, status_code=202)
async def upload_members_background(
    kind: MemberKind,
    file: UploadFile = File(...),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Accept a CSV and process it in a Celery worker.

    Poll /jobs/{job_id} or stream /jobs/{job_id}/stream for progress.
    """
    content = await read_upload(file)

    job = start_job(db, ctx, kind.entity_kind, file.filename)
    job_id = str(job.id)

    temp_dir = Path(settings.upload_temp_dir)
    temp_dir.mkdir(parents=True, exist_ok=True)
    temp_file_path = temp_dir / f"{job_id}.csv"

    try:
        temp_file_path.write_bytes(content)
        logger.info(f"💾 Saved upload for job {job_id}: {len(content)} bytes")

        process_upload_job.delay(job_id, str(temp_file_path))
        logger.info(f"🚀 Background task queued for job {job_id}")
    except Exception as e:
        logger.error(f"💥 Failed to queue job {job_id}: {str(e)}", exc_info=True)

        db.delete(job)
        db.commit()
        if temp_file_path.exists():
            temp_file_path.unlink()

        raise HTTPException(status_code=500, detail=f"Upload failed: {str(e)}")

    return UploadQueuedResponse(job_id=job_id, status=JobStatus.PROCESSING.value)
