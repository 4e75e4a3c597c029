"""Tests for effective user id resolution."""

import pytest

from progress_sync.progress.identity import IdentitySnapshot, resolve_effective_user_id


def test_api_user_id_wins() -> None:
    snapshot = IdentitySnapshot(id="provider-id", api_user_id="api-id", sub="sub-id")
    assert resolve_effective_user_id(snapshot) == "api-id"


def test_legacy_api_user_field_before_provider_id() -> None:
    snapshot = IdentitySnapshot(id="provider-id", api_user_alt_id="api-legacy")
    assert resolve_effective_user_id(snapshot) == "api-legacy"


def test_permanent_provider_id() -> None:
    assert resolve_effective_user_id(IdentitySnapshot(id="provider-id", sub="sub-id")) == "provider-id"


def test_temporary_provider_id_is_used_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    snapshot = IdentitySnapshot(id="google-123", is_temporary_id=True, sub="sub-id")

    assert resolve_effective_user_id(snapshot) == "google-123"
    assert "temporary" in caplog.text


@pytest.mark.parametrize(
    ("snapshot", "expected"),
    [
        (IdentitySnapshot(sub="sub-id", local_account_id="local-id"), "sub-id"),
        (IdentitySnapshot(local_account_id="local-id"), "local-id"),
    ],
)
def test_fallback_ids(snapshot: IdentitySnapshot, expected: str) -> None:
    assert resolve_effective_user_id(snapshot) == expected


def test_email_is_never_an_id() -> None:
    assert resolve_effective_user_id(IdentitySnapshot(email="someone@example.com")) is None


def test_missing_snapshot() -> None:
    assert resolve_effective_user_id(None) is None
    assert resolve_effective_user_id(IdentitySnapshot()) is None


def test_snapshot_accepts_camel_case() -> None:
    snapshot = IdentitySnapshot.model_validate({"apiUserId": "api-id", "localAccountId": "x"})
    assert resolve_effective_user_id(snapshot) == "api-id"
