"""
Signing suite for credentials and presentations.

Data Integrity proofs with the ecdsa-jcs-2022 cryptosuite:
- Curve: P-256 (secp256r1) with SHA-256
- Canonicalization: JCS-style sorted compact JSON
- Signed message: sha256(proof config) || sha256(document without proof)
- Signature: DER, base64url without padding (raw r||s accepted on verify)
"""

from __future__ import annotations

import base64
import hashlib
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from vp_verifier.errors import DocumentLoaderError, SignatureError
from vp_verifier.integrity import canonicalize, strip_proof
from vp_verifier.loader import DocumentLoader, PublicKeyJWK
from vp_verifier.models import format_timestamp, utcnow

PROOF_TYPE = "DataIntegrityProof"
CRYPTOSUITE = "ecdsa-jcs-2022"


@dataclass(frozen=True)
class SignatureVerification:
    """Result of cryptographic proof verification."""

    verified: bool
    error: str | None = None


class SigningSuite(Protocol):
    """External signing/verification collaborator."""

    def sign(
        self, document: Mapping[str, Any], key_pair: KeyPair, **proof_options: Any
    ) -> dict[str, Any]: ...

    def verify(self, document: Mapping[str, Any]) -> SignatureVerification: ...


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def b64url_decode(data: str) -> bytes:
    padding = 4 - (len(data) % 4)
    if padding != 4:
        data += "=" * padding
    return base64.urlsafe_b64decode(data)


@dataclass
class KeyPair:
    """A P-256 signing key bound to a controller DID."""

    controller: str
    private_key: ec.EllipticCurvePrivateKey
    key_id: str = field(default="")

    def __post_init__(self) -> None:
        if not self.key_id:
            self.key_id = f"{self.controller}#key-1"

    @classmethod
    def generate(cls, controller: str | None = None) -> KeyPair:
        """Generate a key pair; controller defaults to a fresh did:example DID."""
        return cls(
            controller=controller or f"did:example:{uuid.uuid4().hex}",
            private_key=ec.generate_private_key(ec.SECP256R1()),
        )

    def public_jwk(self) -> PublicKeyJWK:
        numbers = self.private_key.public_key().public_numbers()
        return PublicKeyJWK(
            kty="EC",
            crv="P-256",
            x=b64url_encode(numbers.x.to_bytes(32, byteorder="big")),
            y=b64url_encode(numbers.y.to_bytes(32, byteorder="big")),
        )

    def did_document(self) -> dict[str, Any]:
        return {
            "@context": [
                "https://www.w3.org/ns/did/v1",
                "https://w3id.org/security/jwk/v1",
            ],
            "id": self.controller,
            "verificationMethod": [
                {
                    "id": self.key_id,
                    "type": "JsonWebKey",
                    "controller": self.controller,
                    "publicKeyJwk": self.public_jwk().to_dict(),
                }
            ],
            "authentication": [self.key_id],
            "assertionMethod": [self.key_id],
        }


class EcdsaJcsSuite:
    """ECDSA P-256 Data Integrity signing suite."""

    SUPPORTED_PROOF_TYPES = {PROOF_TYPE}
    SUPPORTED_CRYPTOSUITES = {CRYPTOSUITE}

    def __init__(self, loader: DocumentLoader | None = None) -> None:
        """Initialize the suite.

        Args:
            loader: Resolves verification methods to public keys. Created if
                not provided.
        """
        self.loader = loader or DocumentLoader()

    def sign(
        self,
        document: Mapping[str, Any],
        key_pair: KeyPair,
        proof_purpose: str = "assertionMethod",
        created: str | None = None,
        **proof_options: Any,
    ) -> dict[str, Any]:
        """Create a proof over a document.

        Extra proof options (challenge, domain, dataHash, ...) are part of
        the signed proof config.

        Returns:
            The proof object; the caller attaches it as ``proof``.
        """
        proof: dict[str, Any] = {
            "type": PROOF_TYPE,
            "cryptosuite": CRYPTOSUITE,
            "created": created or format_timestamp(utcnow()),
            "verificationMethod": key_pair.key_id,
            "proofPurpose": proof_purpose,
        }
        proof.update({k: v for k, v in proof_options.items() if v is not None})

        signature = key_pair.private_key.sign(
            self._signing_input(document, proof),
            ec.ECDSA(hashes.SHA256()),
        )
        proof["proofValue"] = b64url_encode(signature)
        return proof

    def verify(self, document: Mapping[str, Any]) -> SignatureVerification:
        """Verify the proof attached to a document."""
        proof = document.get("proof")
        if not isinstance(proof, Mapping):
            return SignatureVerification(False, "Missing proof")

        proof_type = proof.get("type")
        if proof_type not in self.SUPPORTED_PROOF_TYPES:
            return SignatureVerification(False, f"Unsupported proof type: {proof_type}")

        cryptosuite = proof.get("cryptosuite")
        if cryptosuite not in self.SUPPORTED_CRYPTOSUITES:
            return SignatureVerification(False, f"Unsupported cryptosuite: {cryptosuite}")

        verification_method = proof.get("verificationMethod")
        if not verification_method:
            return SignatureVerification(False, "Missing verificationMethod in proof")

        proof_value = proof.get("proofValue")
        if not isinstance(proof_value, str) or not proof_value:
            return SignatureVerification(False, "Missing proofValue in proof")

        try:
            public_key = self._resolve_public_key(verification_method)
        except (DocumentLoaderError, SignatureError) as e:
            return SignatureVerification(False, f"Key resolution failed: {e}")

        try:
            valid = self._verify_signature(
                public_key,
                b64url_decode(proof_value),
                self._signing_input(document, proof),
            )
        except Exception as e:
            return SignatureVerification(False, f"Signature verification error: {e}")

        return SignatureVerification(valid, None if valid else "Invalid signature")

    def _signing_input(self, document: Mapping[str, Any], proof: Mapping[str, Any]) -> bytes:
        proof_config = {k: v for k, v in proof.items() if k != "proofValue"}
        return (
            hashlib.sha256(canonicalize(proof_config)).digest()
            + hashlib.sha256(canonicalize(strip_proof(document))).digest()
        )

    def _resolve_public_key(self, verification_method: str) -> ec.EllipticCurvePublicKey:
        did_document = self.loader.resolve_did(verification_method)

        vm = did_document.get_verification_method(verification_method)
        if vm is None:
            raise SignatureError(
                f"Verification method {verification_method} not found in DID Document"
            )
        if vm.public_key_jwk is None or not vm.public_key_jwk.is_valid_p256():
            raise SignatureError(
                f"No P-256 publicKeyJwk in verification method {verification_method}"
            )

        x = int.from_bytes(b64url_decode(vm.public_key_jwk.x), byteorder="big")
        y = int.from_bytes(b64url_decode(vm.public_key_jwk.y), byteorder="big")
        return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256R1()).public_key()

    def _verify_signature(
        self,
        public_key: ec.EllipticCurvePublicKey,
        signature: bytes,
        message: bytes,
    ) -> bool:
        try:
            public_key.verify(signature, message, ec.ECDSA(hashes.SHA256()))
            return True
        except InvalidSignature:
            if len(signature) != 64:
                return False

        # Raw r||s form (64 bytes for P-256).
        r = int.from_bytes(signature[:32], byteorder="big")
        s = int.from_bytes(signature[32:], byteorder="big")
        try:
            public_key.verify(
                encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256())
            )
            return True
        except InvalidSignature:
            return False
