"""
Document integrity hashing.

Issuers and holders embed a SHA-256 digest of the document (proof removed)
in ``proof.dataHash``. It is a tamper check independent of the signature;
a document without one has no integrity claim and passes.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Mapping

HASH_FIELD = "dataHash"


@dataclass(frozen=True)
class IntegrityCheck:
    """Outcome of comparing a document with its embedded hash."""

    valid: bool
    expected_hash: str | None = None
    actual_hash: str | None = None


def canonicalize(document: Any) -> bytes:
    """Canonical serialization: keys sorted at every level, compact, UTF-8.

    Arrays keep their element order.
    """
    return json.dumps(
        document, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def strip_proof(document: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in document.items() if k != "proof"}


def hash_document(document: Mapping[str, Any]) -> str:
    """Lower-case hex SHA-256 of the canonical document without its proof."""
    return hashlib.sha256(canonicalize(strip_proof(document))).hexdigest()


def expected_hash(proof: Any) -> str | None:
    """The hash embedded in a proof at issuance, if any."""
    if not isinstance(proof, Mapping):
        return None
    value = proof.get(HASH_FIELD)
    return value if isinstance(value, str) and value else None


def check_integrity(document: Mapping[str, Any]) -> IntegrityCheck:
    expected = expected_hash(document.get("proof"))
    if expected is None:
        return IntegrityCheck(valid=True)
    actual = hash_document(document)
    return IntegrityCheck(
        valid=actual == expected.lower(),
        expected_hash=expected,
        actual_hash=actual,
    )


class IntegrityHasher:
    """Injectable wrapper around the module functions."""

    def canonicalize(self, document: Any) -> bytes:
        return canonicalize(document)

    def hash(self, document: Mapping[str, Any]) -> str:
        return hash_document(document)

    def expected_hash(self, proof: Any) -> str | None:
        return expected_hash(proof)

    def check(self, document: Mapping[str, Any]) -> IntegrityCheck:
        return check_integrity(document)
