"""
Presentation verifier with mandatory revocation consultation.

Wraps the verification pipeline with two steps for selective disclosure
workflows:

- every embedded credential is looked up with the issuer's revocation
  service. A revoked credential fails the presentation. So does a credential
  whose status cannot be determined: an unknown status is never read as
  "active".
- a disclosure analysis reports which claims were revealed and which were
  hidden. It is informational and never changes the verdict.

Each verification is stored in an append-only history.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Mapping

from vp_verifier.disclosure import SELECTIVE_POINTERS, compact_term, locate_claim
from vp_verifier.errors import (
    CredentialRevokedError,
    RevocationError,
    RevocationStatusUnavailableError,
)
from vp_verifier.models import Presentation, format_timestamp, utcnow
from vp_verifier.pipeline import VerificationOptions, VerificationPipeline, VerificationResult
from vp_verifier.revocation import (
    Determined,
    RevocationLookup,
    RevocationStatus,
    Undetermined,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestTemplate:
    """Claims a verifier asks for in a given scenario."""

    id: str
    name: str
    description: str
    required_fields: tuple[str, ...]
    optional_fields: tuple[str, ...] = ()
    exclude_fields: tuple[str, ...] = ()


REQUEST_TEMPLATES: dict[str, RequestTemplate] = {
    template.id: template
    for template in (
        RequestTemplate(
            id="employment-verification",
            name="Employment verification",
            description="Basic degree check without grades",
            required_fields=("name", "degree"),
            optional_fields=("university", "graduationDate"),
            exclude_fields=("gpa",),
        ),
        RequestTemplate(
            id="full-degree-verification",
            name="Full degree verification",
            description="Complete degree check including grades",
            required_fields=("name", "degree", "university", "graduationDate", "gpa"),
        ),
        RequestTemplate(
            id="basic-degree-verification",
            name="Basic degree verification",
            description="Minimal degree check",
            required_fields=("name", "degree"),
        ),
    )
}


@dataclass(frozen=True)
class PresentationRequest:
    id: str
    template_id: str
    required_fields: tuple[str, ...]
    optional_fields: tuple[str, ...]
    challenge: str
    domain: str
    created_at: str
    verifier_did: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "templateId": self.template_id,
            "requiredFields": list(self.required_fields),
            "optionalFields": list(self.optional_fields),
            "challenge": self.challenge,
            "domain": self.domain,
            "createdAt": self.created_at,
            "verifierDid": self.verifier_did,
        }


@dataclass(frozen=True)
class DisclosureAnalysis:
    revealed_fields: tuple[str, ...] = ()
    hidden_fields: tuple[str, ...] = ()
    missing_required_fields: tuple[str, ...] = ()

    @property
    def privacy_level(self) -> str:
        return "high" if self.hidden_fields else "low"

    @property
    def revealed_count(self) -> int:
        return len(self.revealed_fields)

    @property
    def hidden_count(self) -> int:
        return len(self.hidden_fields)

    @property
    def total_fields(self) -> int:
        return self.revealed_count + self.hidden_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "revealedFields": list(self.revealed_fields),
            "hiddenFields": list(self.hidden_fields),
            "privacyLevel": self.privacy_level,
            "totalFields": self.total_fields,
            "revealedCount": self.revealed_count,
            "hiddenCount": self.hidden_count,
            "missingRequiredFields": list(self.missing_required_fields),
        }


@dataclass(frozen=True)
class CredentialRevocationCheck:
    credential_id: str
    status: RevocationStatus

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"credentialId": self.credential_id}
        if isinstance(self.status, Undetermined):
            out.update(revocationChecked=False, status="check_failed", error=self.status.reason)
            return out
        out.update(
            revocationChecked=True,
            revoked=self.status.revoked,
            status="revoked" if self.status.revoked else "active",
        )
        if self.status.record is not None:
            out["details"] = self.status.record.to_dict()
        return out


@dataclass(frozen=True)
class VerificationRecord:
    """A stored verification verdict."""

    id: str
    timestamp: str
    result: VerificationResult
    analysis: DisclosureAnalysis
    revocation_checks: tuple[CredentialRevocationCheck, ...] = ()
    failure_reason: str | None = None
    request_id: str | None = None

    @property
    def verified(self) -> bool:
        return self.result.verified

    @property
    def presentation_id(self) -> str | None:
        return self.result.presentation_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            **self.result.to_dict(),
            "verificationFailedDue": self.failure_reason,
            "revocationStatus": [c.to_dict() for c in self.revocation_checks],
            "analysis": self.analysis.to_dict(),
            "requestId": self.request_id,
        }


class PresentationVerifier:
    """Policy layer over VerificationPipeline."""

    def __init__(
        self,
        pipeline: VerificationPipeline,
        revocation_lookup: RevocationLookup,
        verifier_did: str | None = None,
        templates: Mapping[str, RequestTemplate] | None = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            pipeline: The verification pipeline.
            revocation_lookup: Issuer revocation service consulted for every
                embedded credential.
            verifier_did: Identifier placed in presentation requests.
            templates: Request templates by id. Defaults to REQUEST_TEMPLATES.
        """
        self.pipeline = pipeline
        self.revocation_lookup = revocation_lookup
        self.verifier_did = verifier_did
        self.templates = dict(templates) if templates is not None else dict(REQUEST_TEMPLATES)
        self._history: dict[str, VerificationRecord] = {}
        self._lock = threading.Lock()

    def verify(
        self,
        presentation: Presentation | Mapping[str, Any] | None,
        options: VerificationOptions | None = None,
        request: PresentationRequest | None = None,
    ) -> VerificationRecord:
        """Verify a presentation and record the verdict.

        When a request is given its challenge and domain become the expected
        values. Never raises.
        """
        document: Any = (
            presentation.to_dict() if isinstance(presentation, Presentation) else presentation
        )
        options = options or VerificationOptions()
        if request is not None:
            options = replace(
                options, expected_challenge=request.challenge, expected_domain=request.domain
            )

        result = self.pipeline.verify(document, options)
        revocation_checks: list[CredentialRevocationCheck] = []
        failure_reason = "presentation_revoked" if result.revoked else None
        analysis = DisclosureAnalysis()

        try:
            failure = self._consult_revocation(document, revocation_checks)
            if failure is not None:
                result = self._fail(result, failure)
                failure_reason = failure.code
            analysis = self.analyze_disclosure(document, request)
        except Exception as e:
            logger.exception("Unexpected error in presentation policy checks")
            result = replace(
                result, verified=False, errors=result.errors + (f"Verification failed: {e}",)
            )
            failure_reason = failure_reason or "verification_error"

        if failure_reason is None and not result.verified:
            failure_reason = "verification_failed"

        record = VerificationRecord(
            id=f"verification-{uuid.uuid4().hex}",
            timestamp=format_timestamp(utcnow()),
            result=result,
            analysis=analysis,
            revocation_checks=tuple(revocation_checks),
            failure_reason=failure_reason,
            request_id=request.id if request is not None else None,
        )
        with self._lock:
            self._history[record.id] = record

        logger.info(
            "Presentation %s verification %s: %s",
            record.presentation_id,
            record.id,
            "verified" if record.verified else failure_reason,
        )
        return record

    def _consult_revocation(
        self, presentation: Any, checks: list[CredentialRevocationCheck]
    ) -> RevocationError | None:
        """Look every embedded credential up with the revocation lookup.

        Args:
            presentation: Presentation document.
            checks: Receives one CredentialRevocationCheck per credential.

        Returns:
            The first revocation failure, or None if every credential is
            active.
        """
        credentials = (
            presentation.get("verifiableCredential") if isinstance(presentation, Mapping) else None
        )
        if not isinstance(credentials, list):
            return None

        for credential in credentials:
            if not isinstance(credential, Mapping):
                continue
            # Issuers know derived credentials by their origin id.
            credential_id = credential.get("_derivedFrom") or credential.get("id")
            status = self._lookup(credential_id, _issuer_of(credential))
            checks.append(CredentialRevocationCheck(str(credential_id), status))

            if isinstance(status, Undetermined):
                logger.warning(
                    "Cannot verify revocation status for credential %s: %s",
                    credential_id,
                    status.reason,
                )
                return RevocationStatusUnavailableError(
                    f"Security failure: cannot verify revocation status for credential "
                    f"{credential_id} ({status.reason})"
                )
            if status.revoked:
                message = f"Credential {credential_id} has been revoked"
                if status.record is not None:
                    message += (
                        f" on {status.record.revoked_at} by {status.record.revoked_by}"
                        f" (reason: {status.record.reason})"
                    )
                return CredentialRevokedError(message)
        return None

    def _lookup(self, credential_id: Any, issuer: str | None) -> RevocationStatus:
        """Ask the revocation lookup about one credential.

        Args:
            credential_id: Credential id, or the origin id of a derived one.
            issuer: The credential's issuer.

        Returns:
            The lookup's status; Undetermined if the lookup raised or
            answered with something that is not a status.
        """
        if not isinstance(credential_id, str) or not credential_id:
            return Undetermined(str(credential_id), "credential has no id")
        try:
            status = self.revocation_lookup.check_revocation_status(credential_id, issuer)
        except Exception as e:
            logger.warning("Revocation lookup for %s raised: %s", credential_id, e)
            return Undetermined(credential_id, f"revocation lookup failed: {e}")
        if not isinstance(status, (Determined, Undetermined)):
            return Undetermined(credential_id, "revocation lookup returned no status")
        return status

    def _fail(self, result: VerificationResult, failure: RevocationError) -> VerificationResult:
        """Fail the revocation check of a pipeline result.

        Args:
            result: Pipeline result.
            failure: The revocation failure to report.

        Returns:
            A copy of the result that is not verified.
        """
        checks = dict(result.checks)
        checks["revocation"] = False
        return replace(
            result,
            verified=False,
            revoked=result.revoked or isinstance(failure, CredentialRevokedError),
            checks=MappingProxyType(checks),
            errors=result.errors + (str(failure),),
        )

    def analyze_disclosure(
        self, presentation: Any, request: PresentationRequest | None = None
    ) -> DisclosureAnalysis:
        """Which claims the presentation reveals and which it hides."""
        revealed: list[str] = []
        hidden: list[str] = []

        credentials = (
            presentation.get("verifiableCredential") if isinstance(presentation, Mapping) else None
        )
        for credential in credentials if isinstance(credentials, list) else []:
            if not isinstance(credential, Mapping):
                continue
            subject = credential.get("credentialSubject")
            if isinstance(subject, Mapping):
                for name, pointer in SELECTIVE_POINTERS.items():
                    if locate_claim(subject, pointer) is not None:
                        _append_unique(revealed, name)
                for key in subject:
                    if key != "id":
                        _append_unique(revealed, compact_term(key))
            for name in credential.get("_hiddenFields") or []:
                _append_unique(hidden, str(name))

        missing = ()
        if request is not None:
            missing = tuple(f for f in request.required_fields if f not in revealed)

        return DisclosureAnalysis(
            revealed_fields=tuple(revealed),
            hidden_fields=tuple(hidden),
            missing_required_fields=missing,
        )

    def list_verification_history(self) -> list[VerificationRecord]:
        """Every stored verdict, oldest first. The list is a copy."""
        with self._lock:
            return list(self._history.values())

    def get_verification(self, record_id: str) -> VerificationRecord | None:
        """Look up a stored verdict.

        Args:
            record_id: Id of the verification record.

        Returns:
            The record, or None if there is no such verification.
        """
        with self._lock:
            return self._history.get(record_id)

    def request_templates(self) -> list[RequestTemplate]:
        """Request templates this verifier can build requests from."""
        return list(self.templates.values())

    def create_presentation_request(
        self,
        template_id: str,
        challenge: str | None = None,
        domain: str | None = None,
    ) -> PresentationRequest:
        """Build a presentation request from a template.

        Raises:
            KeyError: If the template does not exist.
        """
        template = self.templates.get(template_id)
        if template is None:
            raise KeyError(f"Template {template_id} not found")

        return PresentationRequest(
            id=f"request-{uuid.uuid4().hex}",
            template_id=template_id,
            required_fields=template.required_fields,
            optional_fields=template.optional_fields,
            challenge=challenge or f"challenge-{uuid.uuid4().hex}",
            domain=domain or "verifier.example.com",
            created_at=format_timestamp(utcnow()),
            verifier_did=self.verifier_did,
        )


def _issuer_of(credential: Mapping[str, Any]) -> str | None:
    issuer = credential.get("issuer")
    if isinstance(issuer, str):
        return issuer
    if isinstance(issuer, Mapping):
        return issuer.get("id")
    return None


def _append_unique(values: list[str], value: str) -> None:
    if value not in values:
        values.append(value)
