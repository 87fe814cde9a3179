import pytest

from shipexpress.core.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from shipexpress.core.issues import IssueDesk
from shipexpress.core.models import CurrentUser, UserProfile
from shipexpress.core.profiles import ProfileService
from shipexpress.storage.blob_storage import LocalBlobStorage


def desk_for(backend, dispatcher, user_id):
    actor = UserProfile.from_dict(backend.get_profile(user_id))
    return IssueDesk(backend, actor, dispatcher=dispatcher)


# ──────────────────────────────────────────────────────
# Issues
# ──────────────────────────────────────────────────────

def test_report_and_resolve(created, backend, dispatcher):
    issue = desk_for(backend, dispatcher, "CUS001").report_issue(
        created.id, "delayed_delivery", "  Still not approved after two days  "
    )
    assert issue.status == "open"
    assert issue.description == "Still not approved after two days"

    staff_latest = backend.list_notifications("STF001")[0]
    assert staff_latest["title"] == "Issue Reported"
    assert staff_latest["message"] == "Kwame Mensah reported 'delayed delivery' on shipment SHP001."
    assert backend.list_notifications("ADM001")[0]["title"] == "Issue Reported"

    resolved = desk_for(backend, dispatcher, "ADM001").resolve_issue(issue.id)
    assert resolved.status == "resolved"
    assert resolved.resolved_by == "ADM001"
    assert backend.list_notifications("CUS001")[0]["title"] == "Issue Resolved"

    with pytest.raises(InvalidTransitionError):
        desk_for(backend, dispatcher, "STF001").resolve_issue(issue.id)


def test_report_validation(created, backend, dispatcher):
    desk = desk_for(backend, dispatcher, "CUS001")
    with pytest.raises(ValidationError):
        desk.report_issue(created.id, "alien_abduction", "?")
    with pytest.raises(ValidationError):
        desk.report_issue(created.id, "other", " ")
    with pytest.raises(NotFoundError):
        desk.report_issue("SHP404", "other", "Where is it?")


def test_report_only_own_shipment(created, backend, dispatcher):
    with pytest.raises(AuthorizationError):
        desk_for(backend, dispatcher, "CUS002").report_issue(created.id, "other", "Not mine")
    with pytest.raises(AuthorizationError):
        desk_for(backend, dispatcher, "STF001").report_issue(created.id, "other", "Staff cannot report")


def test_agents_cannot_resolve(created, backend, dispatcher):
    issue = desk_for(backend, dispatcher, "CUS001").report_issue(created.id, "other", "Question")
    with pytest.raises(AuthorizationError):
        desk_for(backend, dispatcher, "AGT001").resolve_issue(issue.id)


def test_list_issues(created, backend, dispatcher):
    customer = desk_for(backend, dispatcher, "CUS001")
    first = customer.report_issue(created.id, "other", "One")
    customer.report_issue(created.id, "wrong_address", "Two")
    staff = desk_for(backend, dispatcher, "STF001")
    staff.resolve_issue(first.id)

    assert len(staff.list_issues(created.id)) == 2
    assert [i.description for i in staff.list_issues(status="open")] == ["Two"]


# ──────────────────────────────────────────────────────
# Profiles
# ──────────────────────────────────────────────────────

def test_create_and_read_profile(backend):
    service = ProfileService(backend, CurrentUser("CUS777", "new@example.com"))
    profile = service.create_profile("  Adwoa Boakye ", "customer", phone="+233 24 777 0000")

    assert profile.name == "Adwoa Boakye"
    assert service.get_profile() == profile
    assert service.get_profile("AGT001").name == "Kofi Boateng"

    with pytest.raises(ValidationError):
        ProfileService(backend, CurrentUser("X1")).create_profile("X", "superuser")


def test_update_own_profile(backend):
    service = ProfileService(backend, CurrentUser("CUS001"))
    updated = service.update_profile({"phone": "+233 24 000 0000", "address": "East Legon"})

    assert updated.phone == "+233 24 000 0000"
    assert updated.role == "customer"

    with pytest.raises(ValidationError):
        service.update_profile({"role": "admin"})
    with pytest.raises(ValidationError):
        service.update_profile({"name": ""})
    with pytest.raises(AuthorizationError):
        service.update_profile({"name": "Hacker"}, user_id="CUS002")


def test_upload_avatar(backend, tmp_path):
    blobs = LocalBlobStorage(tmp_path, base_url="https://cdn.example")
    service = ProfileService(backend, CurrentUser("AGT001"), blob_storage=blobs)

    profile = service.upload_avatar(b"avatar", "kofi.png")

    assert profile.avatar_url.startswith("https://cdn.example/avatars/")
    assert backend.get_profile("AGT001")["avatar_url"] == profile.avatar_url
