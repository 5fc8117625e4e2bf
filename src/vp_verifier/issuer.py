"""
Credential issuer.

Issues signed credentials, keeps track of what it issued, and answers
revocation queries for those credentials. A credential it never issued has
no status it can vouch for, so lookups for it come back Undetermined.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from vp_verifier.disclosure import generate_pointers, normalize_claims, selective_fields
from vp_verifier.errors import RevocationError, StructuralError
from vp_verifier.integrity import HASH_FIELD, hash_document
from vp_verifier.models import (
    CREDENTIALS_CONTEXT,
    DATA_INTEGRITY_CONTEXT,
    VC_TYPE,
    Credential,
    format_timestamp,
    utcnow,
)
from vp_verifier.revocation import (
    RevocationRecord,
    RevocationRegistry,
    RevocationStatus,
    Undetermined,
)
from vp_verifier.revocation_list import build_revocation_list
from vp_verifier.signing import EcdsaJcsSuite, KeyPair, SigningSuite

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldRule:
    """Validation rule for one claim of a credential template."""

    type: str = "string"
    required: bool = False
    properties: Mapping[str, FieldRule] = field(default_factory=dict)


@dataclass(frozen=True)
class CredentialTemplate:
    """A kind of credential the issuer knows how to issue."""

    id: str
    name: str
    description: str
    credential_type: str
    schema: Mapping[str, FieldRule]
    selective_fields: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.credential_type,
            "schema": _schema_to_dict(self.schema),
            "selectiveFields": list(self.selective_fields),
        }


CREDENTIAL_TEMPLATES: dict[str, CredentialTemplate] = {
    template.id: template
    for template in (
        CredentialTemplate(
            id="UniversityDegree",
            name="University degree",
            description="University degree credential with selective disclosure",
            credential_type="UniversityDegreeCredential",
            schema={
                "subjectId": FieldRule(required=True),
                "name": FieldRule(required=True),
                "degree": FieldRule(
                    type="object",
                    required=True,
                    properties={
                        "type": FieldRule(),
                        "university": FieldRule(required=True),
                        "graduationDate": FieldRule(required=True),
                    },
                ),
                "gpa": FieldRule(type="number"),
            },
            selective_fields=("name", "gpa", "university", "graduationDate"),
        ),
    )
}

_TYPE_CHECKS = {
    "string": lambda value: isinstance(value, str),
    "number": lambda value: isinstance(value, (int, float)) and not isinstance(value, bool),
    "object": lambda value: isinstance(value, Mapping),
}


def validate_claims(
    data: Mapping[str, Any], schema: Mapping[str, FieldRule], path: str = ""
) -> None:
    """Check compact claims against a template schema.

    Nested objects are validated against their rule's properties.

    Args:
        data: Compact claims.
        schema: Rules by claim name.
        path: Prefix for claim names in error messages.

    Raises:
        StructuralError: If a required claim is missing or a claim has the
            wrong type.
    """
    for name, rule in schema.items():
        value = data.get(name)
        if value is None or value == "":
            if rule.required:
                raise StructuralError(f"Missing required field: {path}{name}")
            continue
        if not _TYPE_CHECKS[rule.type](value):
            raise StructuralError(f"Field {path}{name} must be of type {rule.type}")
        if rule.properties:
            validate_claims(value, rule.properties, f"{path}{name}.")


def _schema_to_dict(schema: Mapping[str, FieldRule]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name, rule in schema.items():
        entry: dict[str, Any] = {"type": rule.type, "required": rule.required}
        if rule.properties:
            entry["properties"] = _schema_to_dict(rule.properties)
        out[name] = entry
    return out


class Issuer:
    """Issues credentials and owns their revocation status."""

    def __init__(
        self,
        key_pair: KeyPair,
        suite: SigningSuite | None = None,
        registry: RevocationRegistry | None = None,
        templates: Mapping[str, CredentialTemplate] | None = None,
    ) -> None:
        """Initialize the issuer.

        Args:
            key_pair: Assertion key; its controller is the issuer DID.
            suite: Signing suite. An EcdsaJcsSuite is created if not provided.
            registry: Where revocations are recorded. Created if not provided.
            templates: Credential templates by id. Defaults to
                CREDENTIAL_TEMPLATES.
        """
        self.key_pair = key_pair
        self.suite = suite or EcdsaJcsSuite()
        self.registry = registry or RevocationRegistry(authority=key_pair.controller)
        self._templates = dict(templates) if templates is not None else dict(CREDENTIAL_TEMPLATES)
        self._issued: dict[str, Credential] = {}
        self._lock = threading.Lock()

    @property
    def did(self) -> str:
        return self.key_pair.controller

    def issue_credential(
        self,
        subject: Mapping[str, Any],
        types: Iterable[str] = (),
        expiration_date: str | datetime | None = None,
        selective: Iterable[str] | None = None,
    ) -> Credential:
        """Issue a signed credential.

        Args:
            subject: Claims in compact form (``name``, ``gpa``, ``degree``...),
                expanded with normalize_claims.
            types: Credential types besides VerifiableCredential.
            expiration_date: Optional expiry, a datetime or ISO-8601 string.
            selective: Claim names the holder may hide. Defaults to every
                known claim the credential carries.

        Returns:
            The issued credential.
        """
        credential: dict[str, Any] = {
            "@context": [CREDENTIALS_CONTEXT, DATA_INTEGRITY_CONTEXT],
            "id": f"urn:uuid:{uuid.uuid4()}",
            "type": [VC_TYPE] + [t for t in types if t != VC_TYPE],
            "issuer": self.did,
            "issuanceDate": format_timestamp(utcnow()),
            "credentialSubject": normalize_claims(subject),
        }
        if isinstance(expiration_date, datetime):
            expiration_date = format_timestamp(expiration_date)
        if expiration_date:
            credential["expirationDate"] = expiration_date

        fields = list(selective) if selective is not None else selective_fields(credential)
        pointers = generate_pointers(fields)

        proof_options: dict[str, Any] = {HASH_FIELD: hash_document(credential)}
        if pointers:
            proof_options["selectivePointers"] = pointers
        credential["proof"] = self.suite.sign(
            credential, self.key_pair, proof_purpose="assertionMethod", **proof_options
        )

        issued = Credential.from_dict(credential)
        with self._lock:
            self._issued[issued.id] = issued
        logger.info("Issued credential %s to %s", issued.id, issued.subject_id)
        return issued

    def templates(self) -> list[CredentialTemplate]:
        """Credential templates this issuer can issue from."""
        return list(self._templates.values())

    def issue_from_template(
        self,
        template_id: str,
        claims: Mapping[str, Any],
        expiration_date: str | datetime | None = None,
        selective: Iterable[str] | None = None,
    ) -> Credential:
        """Issue a credential after validating its claims against a template.

        Args:
            template_id: Id of a credential template.
            claims: Compact claims, checked against the template schema.
            expiration_date: Optional expiry, a datetime or ISO-8601 string.
            selective: Claim names the holder may hide. Defaults to the
                template's selective fields.

        Returns:
            The issued credential.

        Raises:
            KeyError: If the template does not exist.
            StructuralError: If a required claim is missing or mistyped.
        """
        template = self._templates.get(template_id)
        if template is None:
            raise KeyError(f"Credential template {template_id} not found")

        validate_claims(claims, template.schema)
        return self.issue_credential(
            claims,
            types=[template.credential_type],
            expiration_date=expiration_date,
            selective=selective if selective is not None else template.selective_fields,
        )

    def get_credential(self, credential_id: str) -> Credential | None:
        """Look up a credential this issuer issued.

        Args:
            credential_id: Id of the credential.

        Returns:
            The credential, or None if it was not issued here.
        """
        with self._lock:
            return self._issued.get(credential_id)

    def list_credentials(self) -> list[Credential]:
        """Issued credentials in issuance order."""
        with self._lock:
            return list(self._issued.values())

    def revoke_credential(
        self,
        credential_id: str,
        reason: str = "unspecified",
        metadata: Mapping[str, Any] | None = None,
    ) -> RevocationRecord:
        """Revoke a credential this issuer issued.

        Raises:
            RevocationError: If the credential was not issued here.
            AlreadyRevokedError: If it is already revoked.
        """
        if credential_id not in self._issued:
            raise RevocationError(f"Credential {credential_id} was not issued by {self.did}")
        return self.registry.revoke(
            credential_id, reason=reason, metadata=metadata, revoked_by=self.did
        )

    def check_revocation_status(
        self, credential_id: str, issuer: str | None = None
    ) -> RevocationStatus:
        """Revocation status of a credential this issuer issued.

        Args:
            credential_id: Id of the credential.
            issuer: Issuer the caller attributes the credential to.

        Returns:
            Determined for credentials issued here, Undetermined otherwise.
        """
        if issuer is not None and issuer != self.did:
            return Undetermined(credential_id, f"{issuer} is not served by {self.did}")
        if credential_id not in self._issued:
            return Undetermined(credential_id, f"credential was not issued by {self.did}")
        return self.registry.status_of(credential_id)

    def revocation_list(self) -> dict[str, Any]:
        """The revocation list credential this issuer publishes."""
        return build_revocation_list(self.registry, self.did)

    def stats(self) -> dict[str, int]:
        """Counts of issued, revoked and active credentials."""
        with self._lock:
            credential_ids = list(self._issued)
        issued = len(credential_ids)
        revoked = sum(1 for c in credential_ids if self.registry.is_revoked(c))
        return {"issued": issued, "revoked": revoked, "active": issued - revoked}
