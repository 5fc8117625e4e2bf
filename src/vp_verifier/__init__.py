"""
VP Verifier - Verifiable Presentation issuance and verification library.

Supports:
- W3C Verifiable Credentials and Presentations with Data Integrity proofs
  (ecdsa-jcs-2022 cryptosuite, ECDSA P-256)
- Selective disclosure by claim removal
- Revocation registries, issuer lookups and published revocation lists
- A six-check verification pipeline with fail-closed revocation policy
"""

from vp_verifier.disclosure import SelectiveDisclosureDeriver, derive, generate_pointers
from vp_verifier.errors import (
    AlreadyRevokedError,
    RevocationError,
    StructuralError,
    VerificationError,
)
from vp_verifier.holder import Holder
from vp_verifier.integrity import IntegrityHasher, hash_document
from vp_verifier.issuer import CredentialTemplate, Issuer
from vp_verifier.loader import DocumentLoader
from vp_verifier.models import Credential, DerivedCredential, Presentation
from vp_verifier.pipeline import VerificationOptions, VerificationPipeline, VerificationResult
from vp_verifier.revocation import Determined, RevocationRegistry, Undetermined
from vp_verifier.settings import VerifierSettings
from vp_verifier.signing import EcdsaJcsSuite, KeyPair
from vp_verifier.verifier import PresentationVerifier, VerificationRecord

__version__ = "0.1.0"

__all__ = [
    "AlreadyRevokedError",
    "Credential",
    "CredentialTemplate",
    "DerivedCredential",
    "Determined",
    "DocumentLoader",
    "EcdsaJcsSuite",
    "Holder",
    "IntegrityHasher",
    "Issuer",
    "KeyPair",
    "Presentation",
    "PresentationVerifier",
    "RevocationError",
    "RevocationRegistry",
    "SelectiveDisclosureDeriver",
    "StructuralError",
    "Undetermined",
    "VerificationError",
    "VerificationOptions",
    "VerificationPipeline",
    "VerificationRecord",
    "VerificationResult",
    "VerifierSettings",
    "derive",
    "generate_pointers",
    "hash_document",
]
