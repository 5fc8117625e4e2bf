"""
Credential and presentation records.

Documents travel as JSON; these dataclasses are the validated view of them.
`from_dict` rejects malformed input with StructuralError, `to_dict` gives the
JSON back. Keys the records do not model (``@context``, ``credentialStatus``
and so on) are kept in ``extra`` so a parsed document serializes to the same
JSON and its integrity hash does not change.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from vp_verifier.errors import StructuralError

CREDENTIALS_CONTEXT = "https://www.w3.org/2018/credentials/v1"
DATA_INTEGRITY_CONTEXT = "https://w3id.org/security/data-integrity/v1"

VC_TYPE = "VerifiableCredential"
VP_TYPE = "VerifiablePresentation"

_CREDENTIAL_KEYS = {
    "id",
    "type",
    "issuer",
    "issuanceDate",
    "expirationDate",
    "credentialSubject",
    "proof",
}
_DERIVED_KEYS = {"_derivedFrom", "_hiddenFields", "_derivationType"}
_PRESENTATION_KEYS = {
    "id",
    "type",
    "holder",
    "verifiableCredential",
    "proof",
    "expirationDate",
}


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with second precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc).replace(microsecond=0)
    return value.isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime.

    Naive timestamps are read as UTC.

    Raises:
        ValueError: If the value is not a valid ISO-8601 timestamp.
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_types(value: Any) -> list[str] | None:
    """Return the ``type`` field as a list, or None when it is unusable."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)) and all(isinstance(t, str) for t in value):
        return list(value)
    return None


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise StructuralError(f"{what} must be a JSON object")
    return data


@dataclass
class Credential:
    """A verifiable credential."""

    id: str
    type: list[str]
    issuer: str | dict[str, Any]
    credential_subject: dict[str, Any]
    issuance_date: str | None = None
    expiration_date: str | None = None
    proof: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def issuer_id(self) -> str | None:
        if isinstance(self.issuer, str):
            return self.issuer
        return self.issuer.get("id")

    @property
    def subject_id(self) -> str | None:
        return self.credential_subject.get("id")

    @property
    def is_derived(self) -> bool:
        return False

    @property
    def origin_id(self) -> str:
        """Id the issuer knows this credential by."""
        return self.id

    @classmethod
    def from_dict(cls, data: Any) -> Credential:
        """Build a credential from its JSON form.

        Raises:
            StructuralError: If a required field is missing or malformed.
        """
        data = _require_mapping(data, "Credential")
        return cls(**cls._parse_fields(data))

    @classmethod
    def _parse_fields(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        credential_id = data.get("id")
        if not isinstance(credential_id, str) or not credential_id:
            raise StructuralError("Credential is missing id")

        types = normalize_types(data.get("type"))
        if types is None:
            raise StructuralError(f"Credential {credential_id} has invalid type field")
        if VC_TYPE not in types:
            raise StructuralError(
                f"Credential {credential_id} is missing required {VC_TYPE} type"
            )

        issuer = data.get("issuer")
        if not isinstance(issuer, (str, Mapping)) or not issuer:
            raise StructuralError(f"Credential {credential_id} is missing issuer field")

        subject = data.get("credentialSubject")
        if not isinstance(subject, Mapping):
            raise StructuralError(
                f"Credential {credential_id} is missing credentialSubject"
            )

        proof = data.get("proof")
        if proof is not None and not isinstance(proof, Mapping):
            raise StructuralError(f"Credential {credential_id} has malformed proof")

        known = _CREDENTIAL_KEYS | _DERIVED_KEYS
        return {
            "id": credential_id,
            "type": types,
            "issuer": copy.deepcopy(issuer if isinstance(issuer, str) else dict(issuer)),
            "credential_subject": copy.deepcopy(dict(subject)),
            "issuance_date": data.get("issuanceDate"),
            "expiration_date": data.get("expirationDate"),
            "proof": copy.deepcopy(dict(proof)) if proof is not None else None,
            "extra": {k: copy.deepcopy(v) for k, v in data.items() if k not in known},
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON form."""
        out: dict[str, Any] = {}
        if "@context" in self.extra:
            out["@context"] = copy.deepcopy(self.extra["@context"])
        out["id"] = self.id
        out["type"] = list(self.type)
        out["issuer"] = copy.deepcopy(self.issuer)
        if self.issuance_date is not None:
            out["issuanceDate"] = self.issuance_date
        if self.expiration_date is not None:
            out["expirationDate"] = self.expiration_date
        out["credentialSubject"] = copy.deepcopy(self.credential_subject)
        for key, value in self.extra.items():
            if key != "@context":
                out[key] = copy.deepcopy(value)
        if self.proof is not None:
            out["proof"] = copy.deepcopy(self.proof)
        return out


@dataclass
class DerivedCredential(Credential):
    """A credential with some claims removed by the holder."""

    derived_from: str = ""
    hidden_fields: list[str] = field(default_factory=list)
    derivation_type: str = "field-removal"

    @property
    def is_derived(self) -> bool:
        return True

    @property
    def origin_id(self) -> str:
        return self.derived_from

    @classmethod
    def from_dict(cls, data: Any) -> DerivedCredential:
        data = _require_mapping(data, "Credential")
        fields_ = cls._parse_fields(data)
        derived_from = data.get("_derivedFrom")
        if not isinstance(derived_from, str) or not derived_from:
            raise StructuralError(
                f"Derived credential {fields_['id']} is missing _derivedFrom"
            )
        hidden = data.get("_hiddenFields", [])
        if not isinstance(hidden, (list, tuple)):
            raise StructuralError(
                f"Derived credential {fields_['id']} has malformed _hiddenFields"
            )
        return cls(
            **fields_,
            derived_from=derived_from,
            hidden_fields=[str(name) for name in hidden],
            derivation_type=str(data.get("_derivationType", "field-removal")),
        )

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["_derivedFrom"] = self.derived_from
        out["_hiddenFields"] = list(self.hidden_fields)
        out["_derivationType"] = self.derivation_type
        return out


def parse_credential(data: Any) -> Credential:
    """Parse a credential, returning a DerivedCredential when it carries derivation metadata."""
    data = _require_mapping(data, "Credential")
    if "_derivedFrom" in data:
        return DerivedCredential.from_dict(data)
    return Credential.from_dict(data)


@dataclass
class Presentation:
    """A verifiable presentation bundling one or more credentials."""

    id: str
    holder: str
    verifiable_credential: list[Credential]
    type: list[str] = field(default_factory=lambda: [VP_TYPE])
    proof: dict[str, Any] | None = None
    expiration_date: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def challenge(self) -> str | None:
        return (self.proof or {}).get("challenge")

    @property
    def domain(self) -> str | None:
        return (self.proof or {}).get("domain")

    @classmethod
    def from_dict(cls, data: Any) -> Presentation:
        """Build a presentation from its JSON form.

        Raises:
            StructuralError: If a required field is missing or malformed, or
                any embedded credential is.
        """
        data = _require_mapping(data, "Presentation")

        presentation_id = data.get("id")
        if not isinstance(presentation_id, str) or not presentation_id:
            raise StructuralError("Presentation is missing id")

        types = normalize_types(data.get("type"))
        if types is None or VP_TYPE not in types:
            raise StructuralError(f"Type must include {VP_TYPE}")

        holder = data.get("holder")
        if not isinstance(holder, str) or not holder:
            raise StructuralError("Missing holder field")

        credentials = data.get("verifiableCredential")
        if not isinstance(credentials, list) or not credentials:
            raise StructuralError("verifiableCredential must be a non-empty array")

        proof = data.get("proof")
        if proof is not None and not isinstance(proof, Mapping):
            raise StructuralError("Presentation proof must be a JSON object")

        return cls(
            id=presentation_id,
            holder=holder,
            verifiable_credential=[parse_credential(c) for c in credentials],
            type=types,
            proof=copy.deepcopy(dict(proof)) if proof is not None else None,
            expiration_date=data.get("expirationDate"),
            extra={
                k: copy.deepcopy(v)
                for k, v in data.items()
                if k not in _PRESENTATION_KEYS
            },
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if "@context" in self.extra:
            out["@context"] = copy.deepcopy(self.extra["@context"])
        out["id"] = self.id
        out["type"] = list(self.type)
        out["holder"] = self.holder
        out["verifiableCredential"] = [c.to_dict() for c in self.verifiable_credential]
        if self.expiration_date is not None:
            out["expirationDate"] = self.expiration_date
        for key, value in self.extra.items():
            if key != "@context":
                out[key] = copy.deepcopy(value)
        if self.proof is not None:
            out["proof"] = copy.deepcopy(self.proof)
        return out
