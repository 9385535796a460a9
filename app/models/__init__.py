"""Database models."""
from app.models.account import Account, Role
from app.models.profile import StudentProfile, TrainerProfile
from app.models.upload_job import RowOutcome, UploadJob

__all__ = [
    "Account",
    "Role",
    "RowOutcome",
    "StudentProfile",
    "TrainerProfile",
    "UploadJob",
]
