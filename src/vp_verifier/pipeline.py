"""
Verifiable Presentation verification pipeline.

Runs a presentation through a fixed sequence of checks:

1. structure
2. revocation (a revoked presentation stops here)
3. challenge (and domain)
4. signature and data integrity
5. embedded credentials
6. expiration

``verified`` is the AND of all six checks. A check that had nothing to work
with (missing proof, missing credentials) fails rather than being skipped.
The pipeline never raises: unexpected errors are logged and reported as a
failed verification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

from vp_verifier.errors import (
    ChallengeMismatchError,
    ExpirationError,
    IntegrityError,
    SignatureError,
)
from vp_verifier.integrity import IntegrityHasher
from vp_verifier.models import VC_TYPE, VP_TYPE, Presentation, parse_timestamp, utcnow
from vp_verifier.revocation import RevocationStore
from vp_verifier.signing import EcdsaJcsSuite, SigningSuite

if TYPE_CHECKING:
    from vp_verifier.settings import VerifierSettings

logger = logging.getLogger(__name__)

CHECK_NAMES = ("structure", "revocation", "challenge", "signature", "credentials", "expiration")

REQUIRED_PROOF_PURPOSE = "authentication"


@dataclass(frozen=True)
class VerificationOptions:
    """Caller expectations for a single verification."""

    expected_challenge: str | None = None
    expected_domain: str | None = None
    expected_holder: str | None = None
    now: datetime | None = None


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying one presentation."""

    verified: bool
    presentation_id: str | None
    revoked: bool
    checks: Mapping[str, bool]
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def failed_checks(self) -> list[str]:
        return [name for name in CHECK_NAMES if not self.checks.get(name)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "verified": self.verified,
            "presentationId": self.presentation_id,
            "revoked": self.revoked,
            "checks": dict(self.checks),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class CheckOutcome:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    valid: bool | None = None

    @property
    def passed(self) -> bool:
        if self.valid is not None:
            return self.valid
        return not self.errors


class VerificationPipeline:
    """Verifies presentations against a revocation store and a signing suite."""

    def __init__(
        self,
        registry: RevocationStore,
        suite: SigningSuite | None = None,
        hasher: IntegrityHasher | None = None,
        proof_max_age: timedelta = timedelta(hours=1),
        expiry_warning: timedelta = timedelta(days=30),
    ) -> None:
        """Initialize the pipeline.

        Args:
            registry: Revocation store consulted by presentation id.
            suite: Signature verification collaborator. An EcdsaJcsSuite
                with a default loader is created if not provided.
            hasher: Integrity hasher. Created if not provided.
            proof_max_age: How far in the past a presentation proof may have
                been created.
            expiry_warning: Credentials expiring within this window produce
                a warning.
        """
        self.registry = registry
        self.suite = suite or EcdsaJcsSuite()
        self.hasher = hasher or IntegrityHasher()
        self.proof_max_age = proof_max_age
        self.expiry_warning = expiry_warning

    @classmethod
    def from_settings(
        cls,
        settings: VerifierSettings,
        registry: RevocationStore,
        suite: SigningSuite | None = None,
    ) -> VerificationPipeline:
        """Create a pipeline with the proof window and expiry warning from settings.

        Args:
            settings: Verifier settings.
            registry: Revocation store consulted by presentation id.
            suite: Signature verification collaborator.

        Returns:
            A configured VerificationPipeline.
        """
        return cls(
            registry,
            suite=suite,
            proof_max_age=timedelta(seconds=settings.proof_max_age),
            expiry_warning=timedelta(days=settings.expiry_warning_days),
        )

    def verify(
        self,
        presentation: Presentation | Mapping[str, Any] | None,
        options: VerificationOptions | None = None,
    ) -> VerificationResult:
        """Verify a presentation.

        Args:
            presentation: Presentation record or its raw JSON form.
            options: Expected challenge, domain and holder, and the reference
                time.

        Returns:
            A VerificationResult; never raises.
        """
        options = options or VerificationOptions()
        checks = dict.fromkeys(CHECK_NAMES, False)
        errors: list[str] = []
        warnings: list[str] = []
        revoked = False
        presentation_id = None

        try:
            document: Any = (
                presentation.to_dict() if isinstance(presentation, Presentation) else presentation
            )
            if isinstance(document, Mapping):
                presentation_id = document.get("id")
            now = options.now or utcnow()

            steps = [("structure", self._check_structure(document, options))]
            if not isinstance(document, Mapping):
                document = {}

            revocation = self._check_revocation(document)
            steps.append(("revocation", revocation))
            if revocation.valid is False:
                revoked = True
                self._apply(steps, checks, errors, warnings)
                logger.info("Presentation %s is revoked, stopping verification", presentation_id)
                return self._result(checks, presentation_id, revoked, errors, warnings)

            steps.append(("challenge", self._check_challenge(document, options)))
            steps.append(("signature", self._check_signature(document, now)))
            steps.append(("credentials", self._check_credentials(document, now)))
            steps.append(("expiration", self._check_expiration(document, now)))
            self._apply(steps, checks, errors, warnings)

        except Exception as e:
            logger.exception("Unexpected error verifying presentation %s", presentation_id)
            errors.append(f"Verification failed: {e}")
            return self._result(checks, presentation_id, revoked, errors, warnings, failed=True)

        result = self._result(checks, presentation_id, revoked, errors, warnings)
        logger.info(
            "Verified presentation %s: verified=%s failed=%s",
            presentation_id,
            result.verified,
            result.failed_checks(),
        )
        return result

    def _apply(
        self,
        steps: list[tuple[str, CheckOutcome]],
        checks: dict[str, bool],
        errors: list[str],
        warnings: list[str],
    ) -> None:
        """Copy each check's outcome into the verdict being built."""
        for name, outcome in steps:
            checks[name] = outcome.passed
            errors.extend(outcome.errors)
            warnings.extend(outcome.warnings)

    def _result(
        self,
        checks: dict[str, bool],
        presentation_id: Any,
        revoked: bool,
        errors: list[str],
        warnings: list[str],
        failed: bool = False,
    ) -> VerificationResult:
        """Build the frozen result.

        Args:
            checks: Pass/fail by check name.
            presentation_id: The presentation's id, kept only if it is a string.
            revoked: Whether the presentation is revoked.
            errors: Collected errors.
            warnings: Collected warnings.
            failed: Force a failed verdict after an unexpected error.

        Returns:
            The VerificationResult.
        """
        return VerificationResult(
            verified=not failed and all(checks[name] for name in CHECK_NAMES),
            presentation_id=presentation_id if isinstance(presentation_id, str) else None,
            revoked=revoked,
            checks=MappingProxyType(dict(checks)),
            errors=tuple(errors),
            warnings=tuple(warnings),
        )

    def _check_structure(self, presentation: Any, options: VerificationOptions) -> CheckOutcome:
        """Check required presentation fields and the expected holder.

        Args:
            presentation: Raw presentation document.
            options: Verification options.

        Returns:
            Outcome with one error per missing or malformed field.
        """
        outcome = CheckOutcome()
        errors = outcome.errors

        if presentation is None:
            errors.append("Presentation is null or undefined")
            return outcome
        if not isinstance(presentation, Mapping):
            errors.append("Presentation must be a JSON object")
            return outcome

        types = presentation.get("type")
        if not types:
            errors.append("Missing type field")
        elif not isinstance(types, list):
            errors.append("Type must be an array")
        elif VP_TYPE not in types:
            errors.append(f"Type must include {VP_TYPE}")

        credentials = presentation.get("verifiableCredential")
        if credentials is None:
            errors.append("Missing verifiableCredential field")
        elif not isinstance(credentials, list):
            errors.append("verifiableCredential must be an array")
        elif not credentials:
            errors.append("verifiableCredential array cannot be empty")

        proof = presentation.get("proof")
        if not proof:
            errors.append("Missing proof field")
        elif not isinstance(proof, Mapping):
            errors.append("Proof must be a JSON object")

        holder = presentation.get("holder")
        if not holder:
            errors.append("Missing holder field")
        elif options.expected_holder is not None and holder != options.expected_holder:
            errors.append(f"Holder mismatch. Expected: {options.expected_holder}, Got: {holder}")

        return outcome

    def _check_revocation(self, presentation: Mapping[str, Any]) -> CheckOutcome:
        """Look the presentation id up in the revocation store.

        Args:
            presentation: Presentation document.

        Returns:
            Outcome whose ``valid`` is False when the presentation is revoked.
        """
        # valid is False only when the presentation is actually revoked.
        presentation_id = presentation.get("id")
        if not isinstance(presentation_id, str) or not presentation_id:
            return CheckOutcome(
                errors=["Presentation has no id, revocation status cannot be checked"]
            )

        if not self.registry.is_revoked(presentation_id):
            return CheckOutcome()

        message = f"Presentation {presentation_id} has been revoked"
        record = self.registry.status_of(presentation_id).record
        if record is not None:
            message += f" on {record.revoked_at} (reason: {record.reason})"
        return CheckOutcome(errors=[message], valid=False)

    def _check_challenge(
        self, presentation: Mapping[str, Any], options: VerificationOptions
    ) -> CheckOutcome:
        """Compare the proof challenge and domain with the expected values.

        Args:
            presentation: Presentation document.
            options: Expected challenge and domain.

        Returns:
            Outcome with one error per mismatch.
        """
        outcome = CheckOutcome()
        proof = presentation.get("proof")
        challenge = proof.get("challenge") if isinstance(proof, Mapping) else None

        if not challenge:
            outcome.errors.append("Missing challenge in proof")
            return outcome

        for label, expected, actual in (
            ("Challenge", options.expected_challenge, challenge),
            ("Domain", options.expected_domain, proof.get("domain")),
        ):
            try:
                _expect(label, expected, actual)
            except ChallengeMismatchError as e:
                outcome.errors.append(str(e))

        return outcome

    def _check_signature(self, presentation: Mapping[str, Any], now: datetime) -> CheckOutcome:
        """Check the presentation proof, data integrity and credential proofs.

        Args:
            presentation: Presentation document.
            now: Verification time.

        Returns:
            Outcome collecting proof, integrity and signature errors.
        """
        outcome = CheckOutcome()
        errors = outcome.errors

        proof = presentation.get("proof")
        if not isinstance(proof, Mapping):
            errors.append("Missing proof object")
            return outcome

        if not proof.get("type"):
            errors.append("Missing proof type")

        verification_method = proof.get("verificationMethod")
        if not verification_method:
            errors.append("Missing verification method")

        created = proof.get("created")
        if not created:
            errors.append("Missing proof creation date")
        else:
            try:
                self._check_proof_age(created, now)
            except SignatureError as e:
                errors.append(str(e))

        purpose = proof.get("proofPurpose")
        if not purpose:
            errors.append("Missing proof purpose")
        elif purpose != REQUIRED_PROOF_PURPOSE:
            errors.append(
                f"Invalid proof purpose. Expected: {REQUIRED_PROOF_PURPOSE}, Got: {purpose}"
            )

        errors.extend(self._check_integrity(presentation))

        holder = presentation.get("holder")
        if isinstance(verification_method, str) and holder:
            controller = verification_method.split("#")[0]
            if controller != holder:
                errors.append(
                    f"Verification method {verification_method} is not controlled by holder {holder}"
                )

        signature = self.suite.verify(presentation)
        if not signature.verified:
            errors.append(f"Presentation signature verification failed: {signature.error}")

        credentials = presentation.get("verifiableCredential")
        if isinstance(credentials, list):
            for i, credential in enumerate(credentials):
                if not isinstance(credential, Mapping) or not credential.get("proof"):
                    continue
                try:
                    self._check_issuer_controls(credential, i)
                except SignatureError as e:
                    errors.append(str(e))
                if _is_derived(credential):
                    outcome.warnings.append(
                        f"Credential {i} is derived from {credential.get('_derivedFrom')}; "
                        "its signature is not independently verified"
                    )
                    continue
                result = self.suite.verify(credential)
                if not result.verified:
                    errors.append(f"Credential {i} signature verification failed: {result.error}")

        return outcome

    def _check_issuer_controls(self, credential: Mapping[str, Any], index: int) -> None:
        """Check that a credential proof was made with one of the issuer's keys.

        Args:
            credential: Embedded credential with a proof.
            index: Position of the credential in the presentation.

        Raises:
            SignatureError: If the proof's verification method is not
                controlled by the credential's issuer.
        """
        proof = credential["proof"]
        verification_method = None
        if isinstance(proof, Mapping):
            verification_method = proof.get("verificationMethod")
        issuer = credential.get("issuer")
        if isinstance(issuer, Mapping):
            issuer = issuer.get("id")

        if not isinstance(verification_method, str) or not verification_method:
            raise SignatureError(f"Credential {index} proof has no verification method")
        if verification_method.split("#")[0] != issuer:
            raise SignatureError(
                f"Credential {index} proof is not controlled by issuer {issuer} "
                f"(verification method {verification_method})"
            )

    def _check_proof_age(self, created: Any, now: datetime) -> None:
        """Check the proof creation date against the allowed window.

        Args:
            created: The proof's ``created`` value.
            now: Verification time.

        Raises:
            SignatureError: If the date is invalid, too old, or in the future.
        """
        try:
            created_at = parse_timestamp(created)
        except (TypeError, ValueError) as e:
            raise SignatureError(f"Invalid proof creation date: {created}") from e

        if created_at < now - self.proof_max_age:
            raise SignatureError(
                f"Proof is too old (created more than {_describe(self.proof_max_age)} ago)"
            )
        if created_at > now:
            raise SignatureError("Proof creation date is in the future")

    def _check_integrity(self, presentation: Mapping[str, Any]) -> list[str]:
        """Check the embedded hashes of the presentation and its credentials.

        Args:
            presentation: Presentation document.

        Returns:
            One error per document whose hash does not match.
        """
        documents = [("Presentation data", presentation)]
        credentials = presentation.get("verifiableCredential")
        if isinstance(credentials, list):
            documents.extend(
                (f"Credential {i}", c) for i, c in enumerate(credentials) if isinstance(c, Mapping)
            )

        errors = []
        for label, document in documents:
            try:
                self._verify_hash(document, label)
            except IntegrityError as e:
                errors.append(str(e))
        return errors

    def _verify_hash(self, document: Mapping[str, Any], label: str) -> None:
        """Check one document's embedded hash.

        Raises:
            IntegrityError: If the hash does not match.
        """
        check = self.hasher.check(document)
        if not check.valid:
            raise IntegrityError(
                f"{label} integrity check failed "
                f"(expected hash {check.expected_hash}, actual hash {check.actual_hash})"
            )

    def _check_credentials(self, presentation: Mapping[str, Any], now: datetime) -> CheckOutcome:
        """Check each embedded credential's fields and expiry.

        Args:
            presentation: Presentation document.
            now: Verification time.

        Returns:
            Outcome with per-credential errors and expiry warnings.
        """
        outcome = CheckOutcome()
        errors, warnings = outcome.errors, outcome.warnings

        credentials = presentation.get("verifiableCredential")
        if not isinstance(credentials, list) or not credentials:
            errors.append("No valid credentials found in the presentation")
            return outcome

        for i, credential in enumerate(credentials):
            if not isinstance(credential, Mapping):
                errors.append(f"Credential {i} is not a JSON object")
                continue

            types = credential.get("type")
            if not types or not isinstance(types, list):
                errors.append(f"Credential {i} has invalid type field")
            elif VC_TYPE not in types:
                errors.append(f"Credential {i} is missing required {VC_TYPE} type")

            if not credential.get("issuer"):
                errors.append(f"Credential {i} is missing issuer field")

            if not credential.get("issuanceDate"):
                errors.append(f"Credential {i} is missing issuanceDate")

            expiration = credential.get("expirationDate")
            if not expiration:
                warnings.append(f"Credential {i} has no expiration date")
            else:
                try:
                    self._check_not_expired(expiration, now, f"Credential {i}")
                    if parse_timestamp(expiration) < now + self.expiry_warning:
                        warnings.append(f"Credential {i} will expire soon (on {expiration})")
                except ExpirationError as e:
                    errors.append(str(e))

            if not credential.get("proof"):
                errors.append(f"Credential {i} is missing proof")

        return outcome

    def _check_expiration(self, presentation: Mapping[str, Any], now: datetime) -> CheckOutcome:
        """Check presentation and credential expiry dates.

        Args:
            presentation: Presentation document.
            now: Verification time.

        Returns:
            Outcome that fails if anything has expired.
        """
        outcome = CheckOutcome()

        expiration = presentation.get("expirationDate")
        if expiration:
            try:
                self._check_not_expired(expiration, now, "Presentation")
            except ExpirationError as e:
                outcome.errors.append(str(e))

        # Credential expiry is reported by the credentials check; it still
        # fails this one.
        credentials = presentation.get("verifiableCredential")
        if isinstance(credentials, list):
            for credential in credentials:
                if not isinstance(credential, Mapping) or not credential.get("expirationDate"):
                    continue
                try:
                    self._check_not_expired(credential["expirationDate"], now, "Credential")
                except ExpirationError:
                    outcome.valid = False

        if outcome.errors:
            outcome.valid = False
        return outcome

    def _check_not_expired(self, expiration: Any, now: datetime, subject: str) -> None:
        """Raise if an expirationDate is invalid or in the past.

        Raises:
            ExpirationError: If the date is invalid or has passed.
        """
        try:
            expires_at = parse_timestamp(expiration)
        except (TypeError, ValueError) as e:
            raise ExpirationError(f"{subject} has an invalid expirationDate: {expiration}") from e
        if expires_at < now:
            raise ExpirationError(f"{subject} has expired on {expiration}")


def _expect(label: str, expected: str | None, actual: Any) -> None:
    if expected is not None and actual != expected:
        raise ChallengeMismatchError(f"{label} mismatch. Expected: {expected}, Got: {actual}")


def _is_derived(credential: Mapping[str, Any]) -> bool:
    proof = credential.get("proof")
    return "_derivedFrom" in credential or (
        isinstance(proof, Mapping) and bool(proof.get("_derivedProof"))
    )


def _describe(window: timedelta) -> str:
    seconds = int(window.total_seconds())
    if seconds % 3600 == 0:
        hours = seconds // 3600
        return f"{hours} hour" + ("s" if hours != 1 else "")
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute" + ("s" if minutes != 1 else "")
    return f"{seconds} seconds"
