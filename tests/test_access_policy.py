"""Tests for record-level access policies.

Covers ownership, override permissions and public visibility.
"""

from __future__ import annotations

import pytest

from blobindex.storage.access import (
    AccessDecisionCode,
    OwnershipPolicy,
    PublicVisibilityPolicy,
)
from blobindex.storage.errors import AccessDeniedError
from blobindex.storage.models import ObjectRecord, Principal


def _record(*, owner: int = 7, public: bool | None = False) -> ObjectRecord:
    return ObjectRecord(
        path=f"/{owner}/photo.png",
        original_filename="photo.png",
        owner_user_id=owner,
        publicity=public,
        id=1,
    )


class TestOwnershipPolicy:
    """Tests for the ownership check."""

    def test_owner_allowed(self, owner: Principal) -> None:
        decision = OwnershipPolicy().decide(_record(), owner)
        assert decision.allow is True
        assert decision.code == AccessDecisionCode.ALLOWED_OWNER

    def test_non_owner_denied(self, stranger: Principal) -> None:
        decision = OwnershipPolicy().decide(_record(), stranger)
        assert decision.allow is False
        assert decision.code == AccessDecisionCode.DENIED_NOT_OWNER

    def test_admin_override(self, admin: Principal) -> None:
        """An override permission grants read and write."""
        policy = OwnershipPolicy()
        assert policy.is_visible(_record(), admin)
        assert policy.is_mutable(_record(), admin)

    def test_custom_override_permissions(self) -> None:
        policy = OwnershipPolicy(override_permissions=frozenset({"AUDITOR"}))
        auditor = Principal(user_id=99, permissions=frozenset({"AUDITOR"}))
        assert policy.is_visible(_record(), auditor)
        admin = Principal(user_id=1, permissions=frozenset({"ADMIN"}))
        assert not policy.is_visible(_record(), admin)

    def test_record_without_owner_denied(self, owner: Principal) -> None:
        """Deny by default when the record carries no owner."""
        record = _record().copy(owner_user_id=None)
        assert not OwnershipPolicy().is_visible(record, owner)


class TestPublicVisibilityPolicy:
    """Tests for the public-visibility override."""

    def test_public_record_visible_to_anyone(self, stranger: Principal) -> None:
        decision = PublicVisibilityPolicy().decide(_record(public=True), stranger)
        assert decision.allow is True
        assert decision.code == AccessDecisionCode.ALLOWED_PUBLIC

    def test_public_record_not_mutable_by_stranger(self, stranger: Principal) -> None:
        """Public grants read only."""
        assert not PublicVisibilityPolicy().is_mutable(_record(public=True), stranger)

    def test_private_record_delegates(self, owner: Principal, stranger: Principal) -> None:
        policy = PublicVisibilityPolicy(OwnershipPolicy())
        assert policy.is_visible(_record(public=False), owner)
        assert not policy.is_visible(_record(public=None), stranger)


class TestCheck:
    """Tests for check() raising on deny."""

    def test_check_raises_with_code(self, stranger: Principal) -> None:
        with pytest.raises(AccessDeniedError) as exc_info:
            OwnershipPolicy().check(_record(), stranger, mutation=True)
        assert exc_info.value.code == AccessDecisionCode.DENIED_NOT_OWNER
        assert exc_info.value.path == "/7/photo.png"

    def test_check_passes_for_owner(self, owner: Principal) -> None:
        OwnershipPolicy().check(_record(), owner, mutation=True)
