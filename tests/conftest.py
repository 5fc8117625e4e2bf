"""Shared fixtures for VP Verifier tests."""

from datetime import timedelta

import pytest

from vp_verifier.holder import Holder
from vp_verifier.issuer import Issuer
from vp_verifier.loader import DocumentLoader
from vp_verifier.models import format_timestamp, utcnow
from vp_verifier.pipeline import VerificationPipeline
from vp_verifier.revocation import RevocationRegistry
from vp_verifier.signing import EcdsaJcsSuite, KeyPair

ISSUER_DID = "did:example:university"
HOLDER_DID = "did:example:alice"


@pytest.fixture
def issuer_keys():
    """Generate the issuer's P-256 key pair."""
    return KeyPair.generate(ISSUER_DID)


@pytest.fixture
def holder_keys():
    """Generate the holder's P-256 key pair."""
    return KeyPair.generate(HOLDER_DID)


@pytest.fixture
def loader(issuer_keys, holder_keys):
    """Offline loader that knows both DID documents."""
    loader = DocumentLoader(allow_remote=False)
    loader.add_did_document(issuer_keys.did_document())
    loader.add_did_document(holder_keys.did_document())
    return loader


@pytest.fixture
def suite(loader):
    return EcdsaJcsSuite(loader)


@pytest.fixture
def issuer(issuer_keys, suite):
    return Issuer(issuer_keys, suite)


@pytest.fixture
def holder(holder_keys, suite):
    return Holder(holder_keys, suite)


@pytest.fixture
def registry():
    """Presentation revocation registry."""
    return RevocationRegistry(authority=HOLDER_DID)


@pytest.fixture
def pipeline(registry, suite):
    return VerificationPipeline(registry, suite)


@pytest.fixture
def degree_claims():
    return {
        "subjectId": HOLDER_DID,
        "name": "Alice Example",
        "gpa": 3.8,
        "degree": {
            "type": "MasterDegree",
            "university": "Example University",
            "graduationDate": "2024-06-30",
        },
    }


@pytest.fixture
def issued_credential(issuer, degree_claims):
    """A degree credential valid for a year."""
    return issuer.issue_credential(
        degree_claims,
        types=["UniversityDegreeCredential"],
        expiration_date=format_timestamp(utcnow() + timedelta(days=365)),
    )


@pytest.fixture
def stored_credential_id(holder, issued_credential):
    return holder.receive_credential(issued_credential)


def unsigned_credential(**overrides):
    """Compact credential document without a signature."""
    credential = {
        "id": "cred-1",
        "type": ["VerifiableCredential", "X"],
        "issuer": "iss",
        "issuanceDate": "2024-01-01T00:00:00Z",
        "credentialSubject": {"id": "sub-1", "name": "Ann", "gpa": "18"},
    }
    credential.update(overrides)
    return credential
