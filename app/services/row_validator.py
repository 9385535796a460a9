"""Per-row field validation for onboarding uploads."""
from typing import Dict, Optional, Union

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from app.models.upload_job import EntityKind
from app.services.csv_parser import ParsedRow

YEAR_OF_STUDY_MIN = 1
YEAR_OF_STUDY_MAX = 6

FIELD_LABELS = {
    "full_name": "Full name",
    "email": "Email",
    "roll_number": "Roll number",
    "degree": "Degree",
    "branch": "Branch",
    "year": "Year",
    "department": "Department",
    "specialization": "Specialization",
}


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _check_email(value: str) -> str:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise PydanticCustomError("invalid_email", "Invalid email format: {value}", {"value": value})
    return value.lower()


class MemberUpload(BaseModel):
    """Fields shared by every onboarding row."""

    full_name: str
    email: str

    @field_validator("*", mode="before")
    @classmethod
    def strip_blank(cls, value):
        return _blank_to_none(value)

    @field_validator("email")
    @classmethod
    def email_format(cls, value: str) -> str:
        return _check_email(value)


class StudentUpload(MemberUpload):
    """Accepted student row."""

    roll_number: str
    degree: Optional[str] = None
    branch: Optional[str] = None
    year: Optional[int] = None

    @field_validator("year")
    @classmethod
    def year_in_range(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and not YEAR_OF_STUDY_MIN <= value <= YEAR_OF_STUDY_MAX:
            raise PydanticCustomError(
                "year_range",
                "Year must be between {low} and {high}",
                {"low": YEAR_OF_STUDY_MIN, "high": YEAR_OF_STUDY_MAX},
            )
        return value


class TrainerUpload(MemberUpload):
    """Accepted trainer row."""

    department: Optional[str] = None
    specialization: Optional[str] = None


# Column limits mirror the profile and account tables
MAX_LENGTHS = {
    "full_name": 255,
    "email": 255,
    "roll_number": 50,
    "degree": 100,
    "branch": 100,
    "department": 100,
}

UploadRecord = Union[StudentUpload, TrainerUpload]


class RowValidation(BaseModel):
    """Outcome of validating one row: an accepted record or a reason."""

    record: Optional[UploadRecord] = None
    error: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.record is not None


def _describe(error: dict) -> str:
    field = error["loc"][0] if error["loc"] else ""
    label = FIELD_LABELS.get(field, str(field))
    kind = error["type"]

    if kind in ("missing", "string_type") and error.get("input") is None:
        return f"{label} is required"
    if kind in ("int_parsing", "int_from_float", "int_type"):
        return f"{label} must be a whole number"
    if kind in ("invalid_email", "year_range"):
        return error["msg"]
    return f"{label}: {error['msg']}"


def validate_row(row: ParsedRow, kind: EntityKind) -> RowValidation:
    """
    Validate one parsed row for the given entity kind.

    Pure function of the row's values; expected bad input produces a
    RowValidation with an error instead of raising.

    Args:
        row: Parsed CSV row
        kind: Entity kind being uploaded

    Returns:
        RowValidation with the typed record or a human-readable reason
    """
    if row.error:
        return RowValidation(error=row.error)

    model = StudentUpload if EntityKind(kind) == EntityKind.STUDENT else TrainerUpload
    values: Dict[str, Optional[str]] = {
        field: row.values.get(field) for field in model.model_fields
    }

    problems = []
    try:
        record = model(**values)
    except ValidationError as e:
        problems = [_describe(err) for err in e.errors()]
        record = None

    if record is not None:
        for field, limit in MAX_LENGTHS.items():
            value = getattr(record, field, None)
            if isinstance(value, str) and len(value) > limit:
                problems.append(
                    f"{FIELD_LABELS[field]} must be at most {limit} characters"
                )

    if problems:
        return RowValidation(error="; ".join(problems))
    return RowValidation(record=record)
