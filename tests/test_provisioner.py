"""Tests for duplicate checks and the provisioning unit of work."""
import pytest

from app.models.account import PENDING_SETUP, Account, Role
from app.models.profile import StudentProfile, TrainerProfile
from app.services.accounts import verify_password
from app.services.duplicate_checker import check_duplicates
from app.services.provisioner import ProvisioningError, provision_member
from app.services.row_validator import StudentUpload, TrainerUpload
from conftest import FailingNotifier


def student(email="asha@college.edu", roll="CS01", **extra):
    return StudentUpload(full_name="Asha Rao", email=email, roll_number=roll, **extra)


def trainer(email="robert@college.edu"):
    return TrainerUpload(
        full_name="Dr. Robert Smith",
        email=email,
        department="Computer Science",
        specialization="Machine Learning",
    )


def test_provision_student(db, notifier):
    result = provision_member(db, student(degree="B.Tech", year=2), tenant_id=1, notifier=notifier)

    account = db.query(Account).filter(Account.id == result.account_id).one()
    profile = db.query(StudentProfile).filter(StudentProfile.id == result.entity_id).one()

    assert account.tenant_id == 1
    assert account.must_change_password is True
    assert account.account_status == PENDING_SETUP
    assert [role.name for role in account.roles] == ["STUDENT"]
    assert profile.account_id == account.id
    assert profile.roll_number == "CS01"
    assert profile.year == 2
    assert result.notified is True
    assert account.invitation_sent_at is not None

    welcome = notifier.welcomes[0]
    assert welcome["email"] == "asha@college.edu"
    assert welcome["role"] == "STUDENT"
    assert verify_password(welcome["password"], account.password_hash)


def test_provision_trainer(db, notifier):
    result = provision_member(db, trainer(), tenant_id=1, notifier=notifier)

    profile = db.query(TrainerProfile).filter(TrainerProfile.id == result.entity_id).one()
    assert profile.department == "Computer Science"
    assert result.role == "TRAINER"


def test_notification_failure_does_not_fail_provisioning(db):
    result = provision_member(db, trainer(), tenant_id=1, notifier=FailingNotifier())

    assert result.notified is False
    assert db.query(TrainerProfile).count() == 1
    account = db.query(Account).filter(Account.id == result.account_id).one()
    assert account.invitation_sent_at is None


def test_profile_failure_rolls_back_account(db):
    provision_member(db, student(), tenant_id=1)

    # Same roll number in a different case collides with the unique index
    with pytest.raises(ProvisioningError) as exc_info:
        provision_member(db, student(email="other@college.edu", roll="cs01"), tenant_id=1)

    assert exc_info.value.step == "Profile creation"
    assert str(exc_info.value).startswith("Profile creation failed:")
    assert db.query(Account).filter(Account.email == "other@college.edu").count() == 0
    assert db.query(Account).count() == 1


def test_role_failure_rolls_back_account(db):
    db.query(Role).filter(Role.name == "TRAINER").delete()
    db.commit()

    with pytest.raises(ProvisioningError) as exc_info:
        provision_member(db, trainer(), tenant_id=1)

    assert exc_info.value.step == "Role assignment"
    assert "Role TRAINER not found" in exc_info.value.message
    assert db.query(Account).count() == 0


def test_duplicate_email_in_tenant(db):
    provision_member(db, student(), tenant_id=1)

    check = check_duplicates(db, trainer(email="ASHA@college.edu"), tenant_id=1)

    assert not check.accepted
    assert check.reason == "Email already exists: asha@college.edu"


def test_duplicate_email_in_other_tenant(db):
    provision_member(db, student(), tenant_id=2)

    check = check_duplicates(db, student(roll="CS99"), tenant_id=1)

    assert not check.accepted
    assert "another institution" in check.reason


def test_duplicate_roll_number_is_tenant_scoped(db):
    provision_member(db, student(), tenant_id=1)

    same_tenant = check_duplicates(db, student(email="new@college.edu", roll="cs01"), tenant_id=1)
    other_tenant = check_duplicates(db, student(email="new@college.edu", roll="CS01"), tenant_id=2)

    assert not same_tenant.accepted
    assert same_tenant.reason == "Roll number already exists: cs01"
    assert other_tenant.accepted


def test_trainers_have_no_roll_number_check(db):
    provision_member(db, student(), tenant_id=1)

    assert check_duplicates(db, trainer(), tenant_id=1).accepted
