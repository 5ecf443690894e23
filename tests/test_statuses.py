import pytest

from app.dataroom.categories import CATEGORIES, normalize_category, sort_categories
from app.dataroom.delivery import should_skip_watermark
from app.dataroom.models import AdminUser, Investor
from app.dataroom.rbac import Viewer
from app.dataroom.statuses import (
    EVENT_ACCESS,
    EVENT_NDA_ACCEPT,
    INVESTOR_STATUSES,
    advance,
    has_dataroom_access,
    status_label,
)


def test_first_access_promotes_nda_accepted_to_active():
    assert advance("nda_accepted", EVENT_ACCESS) == "active"


@pytest.mark.parametrize("status", [s for s in INVESTOR_STATUSES if s != "nda_accepted"])
def test_access_never_moves_other_statuses(status):
    assert advance(status, EVENT_ACCESS) == status


def test_nda_acceptance_only_moves_invited():
    assert advance("invited", EVENT_NDA_ACCEPT) == "nda_accepted"
    for status in INVESTOR_STATUSES[1:]:
        assert advance(status, EVENT_NDA_ACCEPT) == status


def test_unknown_event_leaves_status_alone():
    assert advance("nda_accepted", "heartbeat") == "nda_accepted"


@pytest.mark.parametrize(
    "status,allowed",
    [
        ("invited", False),
        ("nda_accepted", True),
        ("active", True),
        ("termsheet_sent", True),
        ("termsheet_signed", True),
        ("docs_out", True),
        ("dropped", False),
        ("revoked", False),
        ("", False),
        (None, False),
    ],
)
def test_dataroom_access_by_status(status, allowed):
    assert has_dataroom_access(status) is allowed


def test_status_labels():
    assert status_label("nda_accepted") == "NDA Accepted"
    assert status_label("revoked") == "Dropped"
    assert status_label("something_new") == "something_new"


def test_categories_sort_in_display_order_with_unknown_last():
    assert sort_categories(["Other", "Custom", "Legal", "Financials"]) == ["Financials", "Legal", "Other", "Custom"]
    assert normalize_category("  Legal ") == "Legal"
    assert CATEGORIES[0] == "Financials"


def _viewer(*, admin=False, investor_status=None):
    return Viewer(
        email="someone@example.com",
        admin=AdminUser(id=3, email="someone@example.com") if admin else None,
        investor=Investor(id=7, email="someone@example.com", status=investor_status) if investor_status else None,
    )


@pytest.mark.parametrize(
    "admin,investor_status,wants_clean,skip",
    [
        (True, None, True, True),
        (True, None, False, False),
        (True, "active", True, False),
        (False, "active", True, False),
        (False, "active", False, False),
    ],
)
def test_only_admin_non_investor_asking_for_clean_skips_watermark(admin, investor_status, wants_clean, skip):
    assert should_skip_watermark(_viewer(admin=admin, investor_status=investor_status), wants_clean) is skip


def test_viewer_cache_keys_are_distinct_per_identity():
    assert _viewer(investor_status="active").cache_key == "inv-7"
    assert _viewer(admin=True).cache_key == "adm-3"
    # Investor identity wins for someone who is both.
    assert _viewer(admin=True, investor_status="active").cache_key == "inv-7"
    with pytest.raises(ValueError):
        Viewer(email="nobody@example.com").cache_key


def test_document_access_follows_status_unless_admin():
    assert _viewer(admin=True).can_access_documents
    assert _viewer(investor_status="active").can_access_documents
    assert not _viewer(investor_status="invited").can_access_documents
    assert not _viewer(investor_status="dropped").can_access_documents
    assert _viewer(admin=True, investor_status="dropped").can_access_documents
