"""
Published revocation lists.

An issuer publishes a RevocationList2020-style credential whose
``credentialSubject.encodedList`` is base64(gzip(JSON array of revoked ids)).
Verifiers fetch it with RevocationListClient, which answers revocation
lookups and reports Undetermined whenever the list cannot be fetched or
decoded.
"""

from __future__ import annotations

import base64
import gzip
import json
import logging
from typing import Any, Iterable

import httpx

from vp_verifier.errors import RevocationListError
from vp_verifier.models import CREDENTIALS_CONTEXT, VC_TYPE, format_timestamp, utcnow
from vp_verifier.revocation import (
    Determined,
    RevocationRegistry,
    RevocationStatus,
    Undetermined,
)

logger = logging.getLogger(__name__)

REVOCATION_LIST_CONTEXT = "https://w3id.org/vc-revocation-list-2020/v1"
REVOCATION_LIST_TYPE = "RevocationList2020Credential"


def encode_revoked_ids(ids: Iterable[str]) -> str:
    return base64.b64encode(gzip.compress(json.dumps(list(ids)).encode("utf-8"))).decode()


def decode_revoked_ids(encoded_list: str) -> set[str]:
    """Decode an encodedList value.

    Raises:
        RevocationListError: If the value is not base64(gzip(JSON array)).
    """
    try:
        ids = json.loads(gzip.decompress(base64.b64decode(encoded_list)))
    except (ValueError, OSError, EOFError) as e:
        raise RevocationListError(f"Failed to decode revocation list: {e}") from e
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise RevocationListError("Revocation list must be an array of ids")
    return set(ids)


def build_revocation_list(registry: RevocationRegistry, issuer_id: str) -> dict[str, Any]:
    """The unsigned revocation list credential for a registry."""
    return {
        "@context": [CREDENTIALS_CONTEXT, REVOCATION_LIST_CONTEXT],
        "id": f"{issuer_id}/revocation-list",
        "type": [VC_TYPE, REVOCATION_LIST_TYPE],
        "issuer": issuer_id,
        "issuanceDate": format_timestamp(utcnow()),
        "credentialSubject": {
            "id": f"{issuer_id}/revocation-list#list",
            "type": "RevocationList2020",
            "encodedList": encode_revoked_ids(registry.revoked_ids()),
        },
    }


class RevocationListClient:
    """Revocation lookup backed by one issuer's published revocation list."""

    def __init__(
        self,
        url: str,
        issuer_id: str | None = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        use_cache: bool = True,
    ) -> None:
        """Initialize the client.

        Args:
            url: URL of the revocation list credential.
            issuer_id: Issuer the list must be published by. When omitted,
                the list answers only for the issuer named in the list.
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            use_cache: Whether to keep the decoded list between lookups.
        """
        self.url = url
        self.issuer_id = issuer_id
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.use_cache = use_cache
        self._published: tuple[str, set[str]] | None = None

    def check_revocation_status(
        self, credential_id: str, issuer: str | None = None
    ) -> RevocationStatus:
        """Look a credential up in the published list.

        Args:
            credential_id: Id of the credential.
            issuer: Issuer of the credential.

        Returns:
            Determined when the list was published by the credential's
            issuer, Undetermined otherwise or when the list is unavailable.
        """
        if issuer is None:
            return Undetermined(credential_id, "credential has no issuer")
        if self.issuer_id is not None and issuer != self.issuer_id:
            return Undetermined(
                credential_id, f"revocation list covers {self.issuer_id}, not {issuer}"
            )

        try:
            published_by, revoked = self._load()
        except RevocationListError as e:
            logger.warning("Revocation status of %s undetermined: %s", credential_id, e)
            return Undetermined(credential_id, str(e))

        if published_by != issuer:
            return Undetermined(
                credential_id, f"revocation list was published by {published_by}, not {issuer}"
            )
        return Determined(credential_id, credential_id in revoked)

    def fetch(self) -> set[str]:
        """Fetch and decode the list.

        Returns:
            The revoked ids.

        Raises:
            RevocationListError: If fetching or decoding fails, or the list
                was not published by the expected issuer.
        """
        return self._load()[1]

    def _load(self) -> tuple[str, set[str]]:
        """Fetch the list credential.

        Returns:
            The publishing issuer and the revoked ids.

        Raises:
            RevocationListError: If fetching or decoding fails.
        """
        if self.use_cache and self._published is not None:
            return self._published

        try:
            with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = client.get(
                    self.url,
                    headers={"Accept": "application/vc+ld+json, application/json"},
                )
                response.raise_for_status()
                credential = response.json()
        except httpx.HTTPStatusError as e:
            raise RevocationListError(
                f"HTTP error fetching revocation list from {self.url}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise RevocationListError(f"Network error fetching revocation list: {e}") from e
        except ValueError as e:
            raise RevocationListError(f"Invalid JSON in revocation list from {self.url}") from e

        if not isinstance(credential, dict):
            raise RevocationListError("Revocation list must be a JSON object")

        published_by = credential.get("issuer")
        if isinstance(published_by, dict):
            published_by = published_by.get("id")
        if not isinstance(published_by, str) or not published_by:
            raise RevocationListError("Missing issuer in revocation list credential")
        if self.issuer_id is not None and published_by != self.issuer_id:
            raise RevocationListError(
                f"Revocation list was published by {published_by}, expected {self.issuer_id}"
            )

        subject = credential.get("credentialSubject")
        encoded_list = subject.get("encodedList") if isinstance(subject, dict) else None
        if not encoded_list:
            raise RevocationListError("Missing encodedList in revocation list credential")

        published = (published_by, decode_revoked_ids(encoded_list))
        if self.use_cache:
            self._published = published
        return published

    def clear_cache(self) -> None:
        """Drop the cached list."""
        self._published = None
