"""Tests for the onboarding upload API."""
import csv
from io import StringIO
from pathlib import Path

from app.api import upload as upload_api
from app.main import app
from app.models.account import Account
from app.models.upload_job import UploadJob
from app.services.accounts import verify_password
from app.services.notifications import get_notifier
from conftest import STUDENT_HEADER, TRAINER_HEADER, FailingNotifier, build_csv

MIXED_STUDENTS = build_csv(
    STUDENT_HEADER,
    [
        ["Asha Rao", "asha@college.edu", "CS01", "B.Tech", "CSE", "2"],
        ["Ben Lee", "ben@college.edu", "CS02", "B.Tech", "CSE", "3"],
        ["Cara Dsouza", "cara-at-college.edu", "CS03", "B.Tech", "CSE", "1"],
        ["Dia Kapoor", "dia@college.edu", "CS04", "", "", ""],
        ["Asha Again", "asha@college.edu", "CS05", "B.Tech", "CSE", "2"],
    ],
)


def upload(client, headers, content, kind="students", filename="members.csv"):
    return client.post(
        f"/api/onboarding/{kind}/upload",
        files={"file": (filename, content, "text/csv")},
        headers=headers,
    )


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_download_template(client):
    response = client.get("/api/onboarding/trainers/template")

    assert response.status_code == 200
    assert "trainer_template.csv" in response.headers["content-disposition"]
    assert response.text.splitlines()[0] == ",".join(TRAINER_HEADER)


def test_unknown_member_kind(client):
    response = client.get("/api/onboarding/parents/template")
    assert response.status_code == 422


def test_upload_requires_tenant_context(client):
    response = upload(client, {}, MIXED_STUDENTS)
    assert response.status_code == 401


def test_upload_mixed_batch(client, tenant_headers, notifier):
    response = upload(client, tenant_headers, MIXED_STUDENTS)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "COMPLETED"
    assert data["total_rows"] == 5
    assert data["successful_rows"] == 3
    assert data["failed_rows"] == 2
    assert data["entity_kind"] == "STUDENT"

    errors = data["errors"]
    assert [e["row_number"] for e in errors] == [3, 5]
    assert errors[0]["error_message"] == "Invalid email format: cara-at-college.edu"
    assert errors[0]["row_data"]["Full Name"] == "Cara Dsouza"
    assert errors[1]["error_code"] == "CONFLICT"
    assert len(notifier.welcomes) == 3


def test_upload_with_bad_header(client, tenant_headers, db):
    content = build_csv(TRAINER_HEADER, [["Tara", "tara@college.edu", "CSE", "ML"]])

    response = upload(client, tenant_headers, content)

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["status"] == "PARSE_FAILED"
    assert "Roll Number" in detail["error"]

    job = client.get(f"/api/onboarding/jobs/{detail['job_id']}", headers=tenant_headers).json()
    assert job["status"] == "PARSE_FAILED"
    assert job["outcomes"] == []
    assert db.query(Account).count() == 0


def test_upload_rejects_non_csv(client, tenant_headers, db):
    response = upload(client, tenant_headers, b"hello", filename="members.xlsx")

    assert response.status_code == 400
    assert db.query(UploadJob).count() == 0


def test_upload_rejects_empty_file(client, tenant_headers):
    response = upload(client, tenant_headers, b"")
    assert response.status_code == 400


def test_upload_rejects_oversize_file(client, tenant_headers, monkeypatch):
    monkeypatch.setattr(upload_api.settings, "max_upload_bytes", 64)

    response = upload(client, tenant_headers, MIXED_STUDENTS)

    assert response.status_code == 413


def test_job_history_and_detail(client, tenant_headers):
    upload(client, tenant_headers, MIXED_STUDENTS)
    trainers = build_csv(TRAINER_HEADER, [["Tara", "tara@college.edu", "CSE", "ML"]])
    upload(client, tenant_headers, trainers, kind="trainers")

    history = client.get("/api/onboarding/jobs", headers=tenant_headers).json()
    assert [j["entity_kind"] for j in history["items"]] == ["TRAINER", "STUDENT"]

    students_only = client.get(
        "/api/onboarding/jobs", params={"kind": "students"}, headers=tenant_headers
    ).json()
    assert len(students_only["items"]) == 1

    job_id = students_only["items"][0]["id"]
    detail = client.get(f"/api/onboarding/jobs/{job_id}", headers=tenant_headers).json()
    assert [o["row_number"] for o in detail["outcomes"]] == [1, 2, 3, 4, 5]
    assert detail["outcomes"][0]["status"] == "SUCCESS"
    assert detail["outcomes"][0]["entity_id"] is not None


def test_jobs_are_tenant_scoped(client, tenant_headers):
    job_id = upload(client, tenant_headers, MIXED_STUDENTS).json()["id"]
    outsider = {"X-Tenant-Id": "2", "X-User-Id": "200"}

    assert client.get(f"/api/onboarding/jobs/{job_id}", headers=outsider).status_code == 404
    assert client.get("/api/onboarding/jobs", headers=outsider).json()["items"] == []


def test_failed_rows_export_can_be_reuploaded(client, tenant_headers):
    job_id = upload(client, tenant_headers, MIXED_STUDENTS).json()["id"]

    response = client.get(f"/api/onboarding/jobs/{job_id}/failures.csv", headers=tenant_headers)

    assert response.status_code == 200
    rows = list(csv.reader(StringIO(response.text)))
    assert rows[0] == STUDENT_HEADER
    assert [r[1] for r in rows[1:]] == ["cara-at-college.edu", "asha@college.edu"]

    corrected = response.text.replace("cara-at-college.edu", "cara@college.edu")
    retry = upload(client, tenant_headers, corrected.encode("utf-8")).json()
    assert retry["successful_rows"] == 1
    assert retry["failed_rows"] == 1
    assert retry["errors"][0]["error_code"] == "CONFLICT"


def test_failed_rows_export_with_errors(client, tenant_headers):
    job_id = upload(client, tenant_headers, MIXED_STUDENTS).json()["id"]

    response = client.get(
        f"/api/onboarding/jobs/{job_id}/failures.csv",
        params={"include_errors": True},
        headers=tenant_headers,
    )

    rows = list(csv.reader(StringIO(response.text)))
    assert rows[0][-2:] == ["Row Number", "Error"]
    assert rows[1][-2] == "3"


def test_background_upload_queues_task(client, tenant_headers, monkeypatch, tmp_path):
    queued = []
    monkeypatch.setattr(upload_api.settings, "upload_temp_dir", str(tmp_path))
    monkeypatch.setattr(
        upload_api.process_upload_job, "delay", lambda *args: queued.append(args)
    )

    response = client.post(
        "/api/onboarding/students/upload/background",
        files={"file": ("members.csv", MIXED_STUDENTS, "text/csv")},
        headers=tenant_headers,
    )

    assert response.status_code == 202
    job_id = response.json()["job_id"]
    assert queued == [(job_id, str(tmp_path / f"{job_id}.csv"))]
    assert Path(queued[0][1]).read_bytes() == MIXED_STUDENTS

    job = client.get(f"/api/onboarding/jobs/{job_id}", headers=tenant_headers).json()
    assert job["status"] == "PROCESSING"


def test_background_upload_cleans_up_when_queue_fails(client, tenant_headers, monkeypatch, tmp_path, db):
    def broken_delay(*args):
        raise ConnectionError("broker unavailable")

    monkeypatch.setattr(upload_api.settings, "upload_temp_dir", str(tmp_path))
    monkeypatch.setattr(upload_api.process_upload_job, "delay", broken_delay)

    response = client.post(
        "/api/onboarding/students/upload/background",
        files={"file": ("members.csv", MIXED_STUDENTS, "text/csv")},
        headers=tenant_headers,
    )

    assert response.status_code == 500
    assert db.query(UploadJob).count() == 0
    assert list(tmp_path.iterdir()) == []


def test_cancel_finished_job_conflicts(client, tenant_headers):
    job_id = upload(client, tenant_headers, MIXED_STUDENTS).json()["id"]

    response = client.post(f"/api/onboarding/jobs/{job_id}/cancel", headers=tenant_headers)

    assert response.status_code == 409


def test_resend_invitation(client, tenant_headers, notifier, db):
    upload(client, tenant_headers, MIXED_STUDENTS)
    account = db.query(Account).filter(Account.email == "ben@college.edu").one()
    first_password = notifier.welcomes[1]["password"]

    response = client.post(
        f"/api/onboarding/accounts/{account.id}/resend-invitation", headers=tenant_headers
    )

    assert response.status_code == 200
    assert response.json()["email"] == "ben@college.edu"
    assert notifier.welcomes[-1]["email"] == "ben@college.edu"
    assert notifier.welcomes[-1]["full_name"] == "Ben Lee"
    assert notifier.welcomes[-1]["role"] == "STUDENT"
    assert notifier.welcomes[-1]["password"] != first_password


def test_resend_invitation_requires_pending_account(client, tenant_headers, db):
    upload(client, tenant_headers, MIXED_STUDENTS)
    account = db.query(Account).filter(Account.email == "ben@college.edu").one()
    account.account_status = "ACTIVE"
    db.commit()

    response = client.post(
        f"/api/onboarding/accounts/{account.id}/resend-invitation", headers=tenant_headers
    )
    outsider = client.post(
        f"/api/onboarding/accounts/{account.id}/resend-invitation",
        headers={"X-Tenant-Id": "2", "X-User-Id": "200"},
    )

    assert response.status_code == 409
    assert outsider.status_code == 404


def test_failed_resend_keeps_previous_password(client, tenant_headers, notifier, db):
    upload(client, tenant_headers, MIXED_STUDENTS)
    account = db.query(Account).filter(Account.email == "ben@college.edu").one()
    account_id = account.id
    first_password = notifier.welcomes[1]["password"]
    first_invited_at = account.invitation_sent_at
    app.dependency_overrides[get_notifier] = lambda: FailingNotifier()

    response = client.post(
        f"/api/onboarding/accounts/{account_id}/resend-invitation", headers=tenant_headers
    )

    assert response.status_code == 502
    db.expire_all()
    account = db.query(Account).filter(Account.id == account_id).one()
    assert verify_password(first_password, account.password_hash)
    assert account.invitation_sent_at == first_invited_at
