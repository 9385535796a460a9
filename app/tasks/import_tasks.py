"""Celery tasks for background onboarding uploads."""
import logging
import os
from uuid import UUID

from app.database import SessionLocal
from app.models.upload_job import JobStatus, UploadJob
from app.services import job_store
from app.services.notifications import NotificationService
from app.services.onboarding import process_job
from app.services.progress import is_cancel_requested
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def process_upload_job(self, job_id: str, file_path: str) -> dict:
    """
    Process a saved upload file for an existing PROCESSING job.

    Args:
        self: Celery task instance
        job_id: Upload job ID
        file_path: Local path to the saved CSV file

    Returns:
        Dict with job status and counts
    """
    logger.info(f"🚀 Starting onboarding task: job_id={job_id}, file_path={file_path}")

    db = SessionLocal()

    try:
        job = db.query(UploadJob).filter(UploadJob.id == UUID(job_id)).first()
        if not job:
            logger.error(f"❌ Job not found in database: {job_id}")
            raise ValueError(f"Job {job_id} not found")

        if job.status != JobStatus.PROCESSING.value:
            logger.warning(f"⚠️ Job {job_id} already {job.status}, skipping")
            return {"status": job.status, "job_id": job_id}

        if not os.path.exists(file_path):
            logger.error(f"❌ CSV file not found: {file_path}")
            job = job_store.mark_parse_failed(db, job, "Uploaded file is no longer available")
            return {"status": job.status, "job_id": job_id, "error": job.error_summary}

        with open(file_path, "rb") as f:
            content = f.read()
        logger.info(f"📁 Loaded CSV file for job {job_id}: {len(content)} bytes")

        job = process_job(
            db,
            job,
            content,
            notifier=NotificationService(),
            should_stop=lambda: is_cancel_requested(job_id),
        )

        result = {
            "status": job.status,
            "job_id": job_id,
            "total_rows": job.total_rows,
            "successful_rows": job.successful_rows,
            "failed_rows": job.failed_rows,
        }
        if job.error_summary:
            result["error"] = job.error_summary
        logger.info(f"🎉 Task finished: {result}")
        return result

    except Exception as e:
        logger.error(f"💥 Task failed for job {job_id}: {str(e)}", exc_info=True)
        raise

    finally:
        db.close()

        try:
            if os.path.exists(file_path):
                os.remove(file_path)
                logger.info(f"🧹 Temp file cleaned up: {file_path}")
        except OSError as cleanup_error:
            logger.warning(f"⚠️ Failed to clean up temp file {file_path}: {str(cleanup_error)}")
