"""
Document loader for JSON-LD contexts and DID documents.

Documents registered up front (local DIDs, pinned contexts) are served from
memory. ``did:web`` identifiers and https URLs are fetched with httpx.
https://w3c-ccg.github.io/did-method-web/
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from vp_verifier.errors import DocumentLoaderError


@dataclass
class PublicKeyJWK:
    """EC public key in JWK format."""

    kty: str
    crv: str
    x: str
    y: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PublicKeyJWK:
        return cls(
            kty=data.get("kty", ""),
            crv=data.get("crv", ""),
            x=data.get("x", ""),
            y=data.get("y", ""),
        )

    def to_dict(self) -> dict[str, str]:
        return {"kty": self.kty, "crv": self.crv, "x": self.x, "y": self.y}

    def is_valid_p256(self) -> bool:
        return self.kty == "EC" and self.crv == "P-256" and bool(self.x) and bool(self.y)


@dataclass
class VerificationMethod:
    id: str
    type: str
    controller: str
    public_key_jwk: PublicKeyJWK | None = None


@dataclass
class DIDDocument:
    """Parsed DID document."""

    id: str
    verification_methods: list[VerificationMethod]
    authentication: list[str]
    assertion_method: list[str]

    def get_verification_method(self, method_id: str) -> VerificationMethod | None:
        for vm in self.verification_methods:
            if vm.id == method_id:
                return vm
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], did: str | None = None) -> DIDDocument:
        """Parse a DID document.

        Raises:
            DocumentLoaderError: If ``did`` is given and does not match the
                document id.
        """
        doc_id = data.get("id", "")
        if did is not None and doc_id != did:
            raise DocumentLoaderError(
                f"DID Document id mismatch: expected {did}, got {doc_id}"
            )

        methods = []
        for vm_data in data.get("verificationMethod", []):
            jwk = vm_data.get("publicKeyJwk")
            methods.append(VerificationMethod(
                id=vm_data.get("id", ""),
                type=vm_data.get("type", ""),
                controller=vm_data.get("controller", ""),
                public_key_jwk=PublicKeyJWK.from_dict(jwk) if jwk else None,
            ))

        return cls(
            id=doc_id,
            verification_methods=methods,
            authentication=_references(data.get("authentication", [])),
            assertion_method=_references(data.get("assertionMethod", [])),
        )


def _references(items: list[Any]) -> list[str]:
    # Relationship entries are either id strings or embedded methods.
    refs = []
    for item in items:
        if isinstance(item, str):
            refs.append(item)
        elif isinstance(item, Mapping) and "id" in item:
            refs.append(item["id"])
    return refs


def did_web_to_url(did: str) -> str:
    """Convert a did:web identifier to the URL of its DID document.

    did:web:example.com -> https://example.com/.well-known/did.json
    did:web:example.com:users:alice -> https://example.com/users/alice/did.json
    did:web:example.com%3A8080 -> https://example.com:8080/.well-known/did.json
    """
    if not did.startswith("did:web:"):
        raise DocumentLoaderError(f"Invalid did:web identifier: {did}")

    parts = did[len("did:web:"):].split("#")[0].split(":")
    domain = parts[0].replace("%3A", ":")
    if len(parts) > 1:
        path = "/" + "/".join(quote(p, safe="") for p in parts[1:]) + "/did.json"
    else:
        path = "/.well-known/did.json"
    return f"https://{domain}{path}"


class DocumentLoader:
    """Resolves context URIs and DIDs to documents."""

    def __init__(
        self,
        documents: Mapping[str, Mapping[str, Any]] | None = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        allow_remote: bool = True,
    ) -> None:
        """Initialize the loader.

        Args:
            documents: Documents served without network access, keyed by URI
                or DID.
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            allow_remote: Whether unknown URIs may be fetched over HTTP.
        """
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.allow_remote = allow_remote
        self._documents: dict[str, dict[str, Any]] = {
            k: dict(v) for k, v in (documents or {}).items()
        }
        self._cache: dict[str, dict[str, Any]] = {}

    def add(self, uri: str, document: Mapping[str, Any]) -> None:
        self._documents[uri] = dict(document)

    def add_did_document(self, document: Mapping[str, Any]) -> None:
        self.add(document["id"], document)

    def load(self, uri: str) -> dict[str, Any]:
        """Load a document by URI or DID.

        Raises:
            DocumentLoaderError: If the document cannot be loaded.
        """
        base = uri.split("#")[0]
        if base in self._documents:
            return self._documents[base]
        if base in self._cache:
            return self._cache[base]

        if base.startswith("did:web:"):
            url = did_web_to_url(base)
        elif base.startswith("https://"):
            url = base
        else:
            raise DocumentLoaderError(f"Cannot load {uri}: unsupported scheme or DID method")

        if not self.allow_remote:
            raise DocumentLoaderError(f"Remote loading disabled, cannot load {uri}")

        document = self._fetch(url, uri)
        self._cache[base] = document
        return document

    def resolve_did(self, did: str) -> DIDDocument:
        base = did.split("#")[0]
        return DIDDocument.from_dict(self.load(base), base)

    def _fetch(self, url: str, uri: str) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = client.get(
                    url,
                    headers={"Accept": "application/did+ld+json, application/ld+json, application/json"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise DocumentLoaderError(
                f"HTTP error loading {uri}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise DocumentLoaderError(f"Network error loading {uri}: {e}") from e
        except ValueError as e:
            raise DocumentLoaderError(f"Invalid JSON loading {uri}") from e

        if not isinstance(data, dict):
            raise DocumentLoaderError(f"Document at {uri} is not a JSON object")
        return data

    def clear_cache(self) -> None:
        self._cache.clear()
