"""
Holder wallet.

Stores received credentials and builds signed presentations from them,
optionally hiding claims through the selective disclosure deriver.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from vp_verifier.disclosure import SelectiveDisclosureDeriver
from vp_verifier.integrity import HASH_FIELD, hash_document
from vp_verifier.models import (
    CREDENTIALS_CONTEXT,
    DATA_INTEGRITY_CONTEXT,
    VP_TYPE,
    Credential,
    DerivedCredential,
    Presentation,
    format_timestamp,
    parse_credential,
    utcnow,
)
from vp_verifier.signing import EcdsaJcsSuite, KeyPair, SigningSuite

logger = logging.getLogger(__name__)


@dataclass
class StoredCredential:
    credential: Credential
    received_at: str
    metadata: dict[str, Any] = field(default_factory=dict)


class Holder:
    """Credential wallet bound to one authentication key."""

    def __init__(
        self,
        key_pair: KeyPair,
        suite: SigningSuite | None = None,
        deriver: SelectiveDisclosureDeriver | None = None,
    ) -> None:
        self.key_pair = key_pair
        self.suite = suite or EcdsaJcsSuite()
        self.deriver = deriver or SelectiveDisclosureDeriver()
        self._credentials: dict[str, StoredCredential] = {}
        self._presentations: list[Presentation] = []
        self._lock = threading.Lock()

    @property
    def did(self) -> str:
        return self.key_pair.controller

    def receive_credential(
        self,
        credential: Credential | Mapping[str, Any],
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        """Validate and store a credential.

        Returns:
            The credential id.

        Raises:
            StructuralError: If the credential is malformed.
        """
        record = parse_credential(
            credential.to_dict() if isinstance(credential, Credential) else credential
        )
        stored = StoredCredential(
            credential=record,
            received_at=format_timestamp(utcnow()),
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._credentials[record.id] = stored
        logger.info("Stored credential %s from %s", record.id, record.issuer_id)
        return record.id

    def list_credentials(self) -> list[Credential]:
        with self._lock:
            return [stored.credential for stored in self._credentials.values()]

    def get_credential(self, credential_id: str) -> Credential | None:
        stored = self._credentials.get(credential_id)
        return stored.credential if stored is not None else None

    def derive_credential(
        self, credential_id: str, hide_fields: Iterable[str] = ()
    ) -> DerivedCredential:
        """Derive a stored credential with claims hidden.

        Raises:
            KeyError: If no credential with that id is stored.
        """
        credential = self.get_credential(credential_id)
        if credential is None:
            raise KeyError(f"Credential {credential_id} not found")
        return self.deriver.derive(credential, hide_fields)

    def create_presentation(
        self,
        credential_ids: Iterable[str],
        hide_fields: Iterable[str] = (),
        challenge: str | None = None,
        domain: str | None = None,
        expiration_date: str | datetime | None = None,
    ) -> Presentation:
        """Build and sign a presentation.

        Every credential is derived with ``hide_fields`` removed when any
        are given; otherwise the stored credentials are embedded as issued.

        Args:
            credential_ids: Stored credentials to present.
            hide_fields: Claim names to hide.
            challenge: Verifier challenge. A random one is used if omitted.
            domain: Verifier domain.
            expiration_date: Optional presentation expiry.

        Raises:
            KeyError: If a credential id is not stored.
            ValueError: If no credential ids are given.
        """
        ids = list(credential_ids)
        if not ids:
            raise ValueError("At least one credential is required")
        hide = list(hide_fields)

        credentials: list[Credential] = []
        for credential_id in ids:
            if hide:
                credentials.append(self.derive_credential(credential_id, hide))
                continue
            credential = self.get_credential(credential_id)
            if credential is None:
                raise KeyError(f"Credential {credential_id} not found")
            credentials.append(credential)

        document: dict[str, Any] = {
            "@context": [CREDENTIALS_CONTEXT, DATA_INTEGRITY_CONTEXT],
            "id": f"urn:uuid:{uuid.uuid4()}",
            "type": [VP_TYPE],
            "holder": self.did,
            "verifiableCredential": [c.to_dict() for c in credentials],
        }
        if isinstance(expiration_date, datetime):
            expiration_date = format_timestamp(expiration_date)
        if expiration_date:
            document["expirationDate"] = expiration_date

        document["proof"] = self.suite.sign(
            document,
            self.key_pair,
            proof_purpose="authentication",
            challenge=challenge or uuid.uuid4().hex,
            domain=domain,
            **{HASH_FIELD: hash_document(document)},
        )

        presentation = Presentation.from_dict(document)
        with self._lock:
            self._presentations.append(presentation)
        logger.info(
            "Created presentation %s with %d credential(s)", presentation.id, len(credentials)
        )
        return presentation

    def list_presentations(self) -> list[Presentation]:
        with self._lock:
            return list(self._presentations)
