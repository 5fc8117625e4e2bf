"""
Revocation registry and revocation status lookups.

The registry is append-only: once an id is revoked it stays revoked for the
lifetime of the registry. Revoking an id twice raises AlreadyRevokedError and
leaves the original record untouched.

Lookups answer with one of two variants. ``Determined`` carries a definite
revoked/active answer; ``Undetermined`` means the status could not be
established and callers must treat it as a failure.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Union, runtime_checkable

from vp_verifier.errors import AlreadyRevokedError
from vp_verifier.models import format_timestamp, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RevocationRecord:
    """A single revocation, created once per subject id."""

    subject_id: str
    revoked_at: str
    reason: str
    revoked_by: str
    metadata: Mapping[str, Any] = field(default_factory=dict)
    revocation_id: str = field(default_factory=lambda: f"revocation-{uuid.uuid4().hex}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "revokedAt": self.revoked_at,
            "reason": self.reason,
            "revokedBy": self.revoked_by,
            "metadata": dict(self.metadata),
            "revocationId": self.revocation_id,
        }


@dataclass(frozen=True)
class Determined:
    """Revocation status that was established."""

    subject_id: str
    revoked: bool
    record: RevocationRecord | None = None


@dataclass(frozen=True)
class Undetermined:
    """Revocation status that could not be established."""

    subject_id: str
    reason: str

    @property
    def revoked(self) -> bool | None:
        return None


RevocationStatus = Union[Determined, Undetermined]


class RevocationStore(Protocol):
    """Append-only store of revoked ids."""

    def revoke(
        self,
        subject_id: str,
        reason: str = "unspecified",
        metadata: Mapping[str, Any] | None = None,
        revoked_by: str | None = None,
    ) -> RevocationRecord: ...

    def is_revoked(self, subject_id: Any) -> bool: ...

    def status_of(self, subject_id: str) -> Determined: ...

    def list_revoked(self) -> list[RevocationRecord]: ...


@runtime_checkable
class RevocationLookup(Protocol):
    """Per-credential revocation status source, usually backed by an issuer."""

    def check_revocation_status(
        self, credential_id: str, issuer: str | None = None
    ) -> RevocationStatus: ...


class RevocationRegistry:
    """In-memory revocation registry.

    Safe to share between threads: inserts are serialized, reads see either
    the state before or after a revoke.
    """

    def __init__(self, authority: str = "unknown") -> None:
        """Initialize an empty registry.

        Args:
            authority: Identifier recorded as ``revoked_by`` when a revoke
                call does not name one.
        """
        self.authority = authority
        self._records: dict[str, RevocationRecord] = {}
        self._lock = threading.Lock()

    def revoke(
        self,
        subject_id: str,
        reason: str = "unspecified",
        metadata: Mapping[str, Any] | None = None,
        revoked_by: str | None = None,
    ) -> RevocationRecord:
        """Revoke a credential or presentation id.

        Args:
            subject_id: Credential or presentation id.
            reason: Human readable reason.
            metadata: Free-form details stored with the record.
            revoked_by: Who revoked it. Defaults to the registry authority.

        Returns:
            The new RevocationRecord.

        Raises:
            AlreadyRevokedError: If the id is already revoked.
            ValueError: If subject_id is empty or not a string.
        """
        if not isinstance(subject_id, str) or not subject_id:
            raise ValueError("subject_id must be a non-empty string")

        with self._lock:
            if subject_id in self._records:
                raise AlreadyRevokedError(subject_id)
            record = RevocationRecord(
                subject_id=subject_id,
                revoked_at=format_timestamp(utcnow()),
                reason=reason,
                revoked_by=revoked_by or self.authority,
                metadata=dict(metadata or {}),
            )
            self._records[subject_id] = record

        logger.info("Revoked %s (%s)", subject_id, reason)
        return record

    def is_revoked(self, subject_id: Any) -> bool:
        """Check whether an id is revoked. Never raises."""
        if not isinstance(subject_id, str):
            return False
        return subject_id in self._records

    def status_of(self, subject_id: str) -> Determined:
        """Revocation status of an id in this registry.

        Args:
            subject_id: Credential or presentation id.

        Returns:
            Determined, carrying the record when the id is revoked.
        """
        record = self._records.get(subject_id) if isinstance(subject_id, str) else None
        return Determined(subject_id=subject_id, revoked=record is not None, record=record)

    def list_revoked(self) -> list[RevocationRecord]:
        """Revocation records in the order they were created."""
        with self._lock:
            return list(self._records.values())

    def revoked_ids(self) -> list[str]:
        """Revoked ids in revocation order."""
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, subject_id: object) -> bool:
        return self.is_revoked(subject_id)


class IssuerDirectory:
    """Routes revocation lookups to the lookup registered for the issuer."""

    def __init__(self, lookups: Mapping[str, RevocationLookup] | None = None) -> None:
        self._lookups: dict[str, RevocationLookup] = dict(lookups or {})

    def register(self, issuer: str, lookup: RevocationLookup) -> None:
        self._lookups[issuer] = lookup

    def check_revocation_status(
        self, credential_id: str, issuer: str | None = None
    ) -> RevocationStatus:
        """Ask the issuer's lookup about a credential.

        Args:
            credential_id: Id of the credential.
            issuer: Issuer of the credential.

        Returns:
            The issuer lookup's answer, or Undetermined when the issuer is
            missing or not registered.
        """
        if issuer is None:
            return Undetermined(credential_id, "credential has no issuer")
        lookup = self._lookups.get(issuer)
        if lookup is None:
            return Undetermined(credential_id, f"unknown issuer {issuer}")
        return lookup.check_revocation_status(credential_id, issuer)
