"""Record-level access policy for the object index.

Deny-by-default ownership check with a public-visibility override:
- Owners may read and mutate their records
- Principals holding an override permission (default: ADMIN) may do anything
- Public records are readable by any principal, but never mutable by non-owners
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum

from blobindex.storage.errors import AccessDeniedError
from blobindex.storage.models import ObjectRecord, Principal

logger = logging.getLogger(__name__)

DEFAULT_OVERRIDE_PERMISSIONS: frozenset[str] = frozenset({"ADMIN"})


class AccessDecisionCode(StrEnum):
    """Access decision codes for logs and error responses."""

    ALLOWED_OWNER = "ACCESS_ALLOWED_OWNER"
    ALLOWED_PERMISSION = "ACCESS_ALLOWED_PERMISSION"
    ALLOWED_PUBLIC = "ACCESS_ALLOWED_PUBLIC"
    DENIED_NOT_OWNER = "ACCESS_DENIED_NOT_OWNER"


@dataclass(frozen=True, slots=True)
class AccessDecision:
    """Result of an access policy evaluation.

    Attributes:
        allow: True if access is allowed.
        code: Machine-readable decision code.
        message: Human-readable message.
    """

    allow: bool
    code: AccessDecisionCode
    message: str


class AccessPolicy(ABC):
    """Decides whether a principal may see or change a record."""

    @abstractmethod
    def decide(
        self,
        record: ObjectRecord,
        principal: Principal,
        *,
        mutation: bool = False,
    ) -> AccessDecision:
        """Evaluate access of ``principal`` to ``record``.

        Args:
            record: The metadata record being accessed.
            principal: The requesting user and their permissions.
            mutation: True for writes (replace, patch, delete).

        Returns:
            AccessDecision with the outcome.
        """
        ...

    def is_visible(self, record: ObjectRecord, principal: Principal) -> bool:
        """Return True if ``principal`` may read ``record``."""
        return self.decide(record, principal).allow

    def is_mutable(self, record: ObjectRecord, principal: Principal) -> bool:
        """Return True if ``principal`` may change ``record``."""
        return self.decide(record, principal, mutation=True).allow

    def check(
        self,
        record: ObjectRecord,
        principal: Principal,
        *,
        mutation: bool = False,
    ) -> None:
        """Raise AccessDeniedError unless access is allowed."""
        decision = self.decide(record, principal, mutation=mutation)
        if not decision.allow:
            logger.info(
                "Access denied: user=%s path=%s mutation=%s code=%s",
                principal.user_id,
                record.path,
                mutation,
                decision.code,
            )
            raise AccessDeniedError(decision.message, path=record.path, code=decision.code)


class OwnershipPolicy(AccessPolicy):
    """Allows the record owner, or any principal holding an override permission."""

    def __init__(self, override_permissions: frozenset[str] = DEFAULT_OVERRIDE_PERMISSIONS) -> None:
        self._override_permissions = override_permissions

    def decide(
        self,
        record: ObjectRecord,
        principal: Principal,
        *,
        mutation: bool = False,
    ) -> AccessDecision:
        if record.owner_user_id is not None and record.owner_user_id == principal.user_id:
            return AccessDecision(
                allow=True,
                code=AccessDecisionCode.ALLOWED_OWNER,
                message="Principal owns the record",
            )

        if principal.permissions & self._override_permissions:
            return AccessDecision(
                allow=True,
                code=AccessDecisionCode.ALLOWED_PERMISSION,
                message="Principal holds an override permission",
            )

        return AccessDecision(
            allow=False,
            code=AccessDecisionCode.DENIED_NOT_OWNER,
            message="Principal does not own the record",
        )


class PublicVisibilityPolicy(AccessPolicy):
    """Grants read access to public records, delegating everything else."""

    def __init__(self, inner: AccessPolicy | None = None) -> None:
        self._inner = inner if inner is not None else OwnershipPolicy()

    def decide(
        self,
        record: ObjectRecord,
        principal: Principal,
        *,
        mutation: bool = False,
    ) -> AccessDecision:
        if not mutation and record.publicity is True:
            return AccessDecision(
                allow=True,
                code=AccessDecisionCode.ALLOWED_PUBLIC,
                message="Record is public",
            )
        return self._inner.decide(record, principal, mutation=mutation)
