"""CSV parsing for onboarding uploads.

The header is checked eagerly so a bad file fails the whole job before any
row is read. Data rows are then yielded lazily, one ``ParsedRow`` per
non-blank line, in file order.
"""
import csv
import logging
from io import StringIO
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel, Field

from app.models.upload_job import EntityKind

logger = logging.getLogger(__name__)

# Header label -> canonical field name, in template order
STUDENT_COLUMNS: Dict[str, str] = {
    "Full Name": "full_name",
    "Email": "email",
    "Roll Number": "roll_number",
    "Degree": "degree",
    "Branch": "branch",
    "Year": "year",
}

TRAINER_COLUMNS: Dict[str, str] = {
    "Full Name": "full_name",
    "Email": "email",
    "Department": "department",
    "Specialization": "specialization",
}

TEMPLATE_EXAMPLES = {
    EntityKind.STUDENT: [
        "John Doe", "john.doe@college.edu", "CS2024001", "B.Tech", "Computer Science", "3",
    ],
    EntityKind.TRAINER: [
        "Dr. Robert Smith", "robert.smith@college.edu", "Computer Science", "Machine Learning",
    ],
}


class CsvFormatError(Exception):
    """Raised when a file cannot be read as an upload of the expected kind."""


class ParsedRow(BaseModel):
    """A single data row keyed by canonical field names."""

    row_number: int
    values: Dict[str, Optional[str]] = Field(default_factory=dict)
    error: Optional[str] = None


def column_map(kind: EntityKind) -> Dict[str, str]:
    """Return the header label to field name mapping for an entity kind."""
    return STUDENT_COLUMNS if EntityKind(kind) == EntityKind.STUDENT else TRAINER_COLUMNS


def expected_columns(kind: EntityKind) -> List[str]:
    """Return the header labels an upload of this kind must carry."""
    return list(column_map(kind).keys())


def build_template(kind: EntityKind) -> str:
    """Build a CSV template with the header and one example row."""
    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(expected_columns(kind))
    writer.writerow(TEMPLATE_EXAMPLES[EntityKind(kind)])
    return buffer.getvalue()


def decode_content(content: bytes) -> str:
    """Decode uploaded bytes as UTF-8, tolerating a byte order mark."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CsvFormatError(f"File is not valid UTF-8 text: {e.reason}") from e


def _normalize(label: str) -> str:
    return " ".join(label.split()).lower()


def _match_header(header: List[str], kind: EntityKind) -> List[Optional[str]]:
    """
    Map each header cell to its field name.

    Raises:
        CsvFormatError: If a required column is missing or an unknown one is present
    """
    known = {_normalize(label): field for label, field in column_map(kind).items()}
    fields = [known.get(_normalize(cell)) for cell in header]

    missing = [
        label for label, field in column_map(kind).items() if field not in fields
    ]
    unexpected = [cell for cell, field in zip(header, fields) if field is None]
    duplicated = sorted({f for f in fields if f is not None and fields.count(f) > 1})

    problems = []
    if missing:
        problems.append(f"missing column(s): {', '.join(missing)}")
    if unexpected:
        problems.append(f"unexpected column(s): {', '.join(c or '<blank>' for c in unexpected)}")
    if duplicated:
        problems.append(f"duplicated column(s): {', '.join(duplicated)}")
    if problems:
        raise CsvFormatError(
            f"Invalid header for {EntityKind(kind).value.lower()} upload ("
            + "; ".join(problems)
            + f"). Expected: {', '.join(expected_columns(kind))}"
        )
    return fields


def open_rows(content: bytes, kind: EntityKind) -> Iterator[ParsedRow]:
    """
    Validate the header and return a lazy iterator over the data rows.

    Args:
        content: Raw uploaded file content
        kind: Entity kind the file is expected to describe

    Returns:
        Single-use iterator of ParsedRow, numbered from 1

    Raises:
        CsvFormatError: If the file cannot be decoded or the header does not match
    """
    text = decode_content(content)
    reader = csv.reader(StringIO(text))

    try:
        header = next(reader, None)
    except csv.Error as e:
        raise CsvFormatError(f"File is not valid CSV: {e}") from e

    if header is None or not any(cell.strip() for cell in header):
        raise CsvFormatError("File is empty or has no header row")

    fields = _match_header(header, kind)
    logger.info(f"CSV header accepted for {EntityKind(kind).value} upload: {header}")
    return _iter_rows(reader, fields)


def _iter_rows(reader, fields: List[Optional[str]]) -> Iterator[ParsedRow]:
    row_number = 0
    while True:
        try:
            cells = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            # The bad line is already consumed; the reader resumes at the next one
            row_number += 1
            yield ParsedRow(row_number=row_number, error=f"Malformed CSV line: {e}")
            continue

        if not any(cell.strip() for cell in cells):
            continue

        row_number += 1
        values = {
            field: cell for field, cell in zip(fields, cells) if field is not None
        }

        error = None
        if len(cells) > len(fields):
            error = (
                f"Row has {len(cells)} columns but the header has {len(fields)}"
                f" ({len(cells) - len(fields)} extra)"
            )
        elif len(cells) < len(fields):
            error = f"Row has {len(cells)} columns but the header has {len(fields)}"
            for field in fields[len(cells):]:
                values[field] = None

        yield ParsedRow(row_number=row_number, values=values, error=error)


def count_data_rows(content: bytes) -> int:
    """
    Count non-blank data rows (excluding header).

    Malformed lines count as one row each, matching open_rows.

    Args:
        content: Raw uploaded file content

    Returns:
        Number of data rows, or 0 if the file cannot be decoded
    """
    try:
        text = decode_content(content)
    except CsvFormatError:
        return 0

    reader = csv.reader(StringIO(text))
    try:
        next(reader, None)
    except csv.Error:
        return 0

    count = 0
    while True:
        try:
            cells = next(reader)
        except StopIteration:
            return count
        except csv.Error:
            count += 1
            continue
        if any(cell.strip() for cell in cells):
            count += 1
