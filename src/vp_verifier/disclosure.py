"""
Selective disclosure by claim removal.

Holders hide claims by deriving a copy of a credential with those claims
deleted. This is a field-removal policy, not a cryptographic selective
disclosure proof: the derived document is not re-signed, and the derived
proof only references the original one.

Claim names map to fixed paths into ``credentialSubject`` through
SELECTIVE_POINTERS. The table is deployment vocabulary (a university degree
and professional certification schema), the same one issuers use to tell the
signing suite which claims are selectively disclosable.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from vp_verifier.errors import StructuralError
from vp_verifier.integrity import HASH_FIELD, hash_document
from vp_verifier.models import (
    Credential,
    DerivedCredential,
    format_timestamp,
    parse_credential,
    utcnow,
)

logger = logging.getLogger(__name__)

SCHEMA_ORG = "http://schema.org/"
EXAMPLE_ORG = "http://example.org/"

DERIVATION_TYPE = "field-removal"


@dataclass(frozen=True)
class ClaimPointer:
    """Location of a named claim inside credentialSubject."""

    name: str
    path: tuple[str, ...]

    @property
    def pointer(self) -> str:
        return "/credentialSubject/" + "/".join(self.path)


def _iri(base: str, *terms: str) -> tuple[str, ...]:
    return tuple(f"{base}{term}" for term in terms)


SELECTIVE_POINTERS: dict[str, ClaimPointer] = {
    pointer.name: pointer
    for pointer in (
        ClaimPointer("name", _iri(SCHEMA_ORG, "name")),
        ClaimPointer("gpa", _iri(EXAMPLE_ORG, "gpa")),
        ClaimPointer("university", _iri(EXAMPLE_ORG, "degree", "university")),
        ClaimPointer("graduationDate", _iri(EXAMPLE_ORG, "degree", "graduationDate")),
        ClaimPointer(
            "certificationDate", _iri(EXAMPLE_ORG, "certification", "certificationDate")
        ),
        ClaimPointer(
            "expirationDate", _iri(EXAMPLE_ORG, "certification", "expirationDate")
        ),
        ClaimPointer("degree", _iri(EXAMPLE_ORG, "degree")),
        ClaimPointer("degreeType", _iri(EXAMPLE_ORG, "degree", "type")),
    )
}


def compact_term(iri: str) -> str:
    """``http://example.org/gpa`` -> ``gpa``."""
    return iri.rstrip("/").rsplit("/", 1)[-1]


def _resolve_key(node: Mapping[str, Any], iri: str) -> str | None:
    # Subjects may use expanded IRIs or plain JSON terms.
    if iri in node:
        return iri
    term = compact_term(iri)
    if term in node:
        return term
    return None


def locate_claim(
    subject: Mapping[str, Any], pointer: ClaimPointer
) -> tuple[dict[str, Any], str] | None:
    """Find the container and key holding a claim, or None if absent."""
    node: Any = subject
    for segment in pointer.path[:-1]:
        if not isinstance(node, Mapping):
            return None
        key = _resolve_key(node, segment)
        if key is None:
            return None
        node = node[key]
    if not isinstance(node, dict):
        return None
    key = _resolve_key(node, pointer.path[-1])
    if key is None:
        return None
    return node, key


def generate_pointers(fields: Iterable[str]) -> list[str]:
    """Pointers for the given claim names, skipping unknown names."""
    return SelectiveDisclosureDeriver().generate_pointers(fields)


def selective_fields(credential: Credential | Mapping[str, Any]) -> list[str]:
    """Names of the known claims a credential carries."""
    subject = _subject_of(credential)
    return [
        name
        for name, pointer in SELECTIVE_POINTERS.items()
        if locate_claim(subject, pointer) is not None
    ]


def normalize_claims(data: Mapping[str, Any]) -> dict[str, Any]:
    """Expand compact claim input into the IRI-keyed subject the issuer signs.

    Accepts ``subjectId``/``id``, ``name``, ``gpa``, ``degree`` and
    ``certification``; other keys are copied unchanged.
    """
    normalized: dict[str, Any] = {}
    subject_id = data.get("subjectId") or data.get("id")
    if subject_id:
        normalized["id"] = subject_id

    if data.get("name"):
        normalized[f"{SCHEMA_ORG}name"] = data["name"]
    if data.get("gpa") is not None:
        normalized[f"{EXAMPLE_ORG}gpa"] = data["gpa"]

    degree = data.get("degree")
    if isinstance(degree, Mapping):
        normalized[f"{EXAMPLE_ORG}degree"] = _drop_none({
            f"{EXAMPLE_ORG}type": degree.get("type") or "BachelorDegree",
            f"{EXAMPLE_ORG}university": degree.get("university"),
            f"{EXAMPLE_ORG}graduationDate": degree.get("graduationDate"),
        })

    certification = data.get("certification")
    if isinstance(certification, Mapping):
        normalized[f"{EXAMPLE_ORG}certification"] = _drop_none({
            f"{EXAMPLE_ORG}type": certification.get("type") or "ProfessionalCertification",
            f"{EXAMPLE_ORG}authority": certification.get("authority"),
            f"{EXAMPLE_ORG}certificationDate": certification.get("certificationDate"),
            f"{EXAMPLE_ORG}expirationDate": certification.get("expirationDate"),
        })

    handled = {"subjectId", "id", "name", "gpa", "degree", "certification"}
    for key, value in data.items():
        if key not in handled:
            normalized[key] = copy.deepcopy(value)
    return normalized


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _subject_of(credential: Credential | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(credential, Credential):
        return credential.credential_subject
    subject = credential.get("credentialSubject") if isinstance(credential, Mapping) else None
    if not isinstance(subject, Mapping):
        raise StructuralError("Credential is missing credentialSubject")
    return subject


class SelectiveDisclosureDeriver:
    """Derives reduced-claim copies of credentials."""

    def __init__(self, pointers: Mapping[str, ClaimPointer] | None = None) -> None:
        self.pointers = dict(pointers) if pointers is not None else SELECTIVE_POINTERS

    def generate_pointers(self, fields: Iterable[str]) -> list[str]:
        pointers = []
        for name in fields:
            pointer = self.pointers.get(name)
            if pointer is None:
                logger.warning("No pointer mapping found for field: %s", name)
                continue
            pointers.append(pointer.pointer)
        return pointers

    def derive(
        self,
        credential: Credential | Mapping[str, Any],
        hide_fields: Iterable[str] = (),
    ) -> DerivedCredential:
        """Copy a credential with the named claims removed.

        Unknown names are ignored. For a nested claim only the mapped
        property is removed; its siblings stay.

        Args:
            credential: Credential record or its JSON form.
            hide_fields: Claim names to hide.

        Returns:
            The derived credential. ``hidden_fields`` lists the names that
            were actually removed, in request order.

        Raises:
            StructuralError: If the credential has no credentialSubject or is
                otherwise malformed.
        """
        source = credential.to_dict() if isinstance(credential, Credential) else credential
        if not isinstance(source, Mapping):
            raise StructuralError("Credential must be a JSON object")
        if not isinstance(source.get("credentialSubject"), Mapping):
            raise StructuralError("Credential is missing credentialSubject")

        origin = parse_credential(source)
        derived = copy.deepcopy(dict(source))
        subject = derived["credentialSubject"]

        hidden: list[str] = []
        previously_hidden = origin.hidden_fields if isinstance(origin, DerivedCredential) else []
        for name in hide_fields:
            if name in hidden:
                continue
            pointer = self.pointers.get(name)
            if pointer is None:
                logger.debug("Ignoring unknown field %s", name)
                continue
            location = locate_claim(subject, pointer)
            if location is None:
                continue
            container, key = location
            del container[key]
            hidden.append(name)

        # A derivation of a derivation still points at the issued credential.
        derived_from = origin.origin_id
        derived["id"] = f"{origin.id}-derived-{int(time.time() * 1000)}"
        derived["_derivedFrom"] = derived_from
        derived["_hiddenFields"] = previously_hidden + [
            name for name in hidden if name not in previously_hidden
        ]
        derived["_derivationType"] = DERIVATION_TYPE

        if origin.proof is not None:
            derived["proof"] = self._derived_proof(origin.proof)
            derived["proof"][HASH_FIELD] = hash_document(derived)

        logger.info(
            "Derived %s from %s hiding %s", derived["id"], derived_from, hidden or "nothing"
        )
        return DerivedCredential.from_dict(derived)

    def _derived_proof(self, proof: Mapping[str, Any]) -> dict[str, Any]:
        derived = {k: copy.deepcopy(v) for k, v in proof.items() if k != "proofValue"}
        original = proof.get("proofValue")
        derived["proofPurpose"] = "assertionMethod"
        derived["created"] = format_timestamp(utcnow())
        derived["_derivedProof"] = True
        derived["_originalProof"] = (
            f"{original[:20]}..." if isinstance(original, str) and original else "original"
        )
        return derived


def derive(
    credential: Credential | Mapping[str, Any], hide_fields: Iterable[str] = ()
) -> DerivedCredential:
    """Derive with the default pointer table."""
    return SelectiveDisclosureDeriver().derive(credential, hide_fields)
