"""
Error taxonomy for credential and presentation handling.

Inside the verification pipeline these errors are rendered into the result's
error list and never propagate. Lower-level building blocks (registry,
deriver, record parsing, issuer and holder services) raise them directly.
"""

from __future__ import annotations


class VerificationError(Exception):
    """Base class for all credential/presentation errors."""

    code = "verification_failed"


class StructuralError(VerificationError):
    """Raised when a required field is missing or malformed."""

    code = "structure"


class RevocationError(VerificationError):
    """Raised when a subject is revoked or its status cannot be determined."""

    code = "revocation"


class AlreadyRevokedError(RevocationError):
    """Raised when revoking an id that is already revoked."""

    code = "already_revoked"

    def __init__(self, subject_id: str) -> None:
        super().__init__(f"{subject_id} has already been revoked")
        self.subject_id = subject_id


class CredentialRevokedError(RevocationError):
    """A credential embedded in a presentation has been revoked."""

    code = "credential_revoked"


class RevocationStatusUnavailableError(RevocationError):
    """Revocation status of a credential could not be determined."""

    code = "revocation_check_failed"


class IntegrityError(VerificationError):
    """Raised when a computed hash does not match the embedded one."""

    code = "integrity"


class SignatureError(VerificationError):
    """Raised on cryptographic or proof-shape failures."""

    code = "signature"


class ExpirationError(VerificationError):
    """Raised when a credential or presentation has expired."""

    code = "expiration"


class ChallengeMismatchError(VerificationError):
    """Raised when the proof challenge or domain does not match."""

    code = "challenge"


class DocumentLoaderError(Exception):
    """Raised when a document or DID cannot be loaded."""


class RevocationListError(Exception):
    """Raised when a published revocation list cannot be fetched or decoded."""
