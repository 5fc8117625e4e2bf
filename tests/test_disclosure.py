"""Tests for selective disclosure."""

import logging

import pytest
from conftest import unsigned_credential

from vp_verifier.disclosure import (
    EXAMPLE_ORG,
    SCHEMA_ORG,
    SELECTIVE_POINTERS,
    SelectiveDisclosureDeriver,
    derive,
    generate_pointers,
    normalize_claims,
    selective_fields,
)
from vp_verifier.errors import StructuralError
from vp_verifier.integrity import check_integrity
from vp_verifier.models import DerivedCredential


class TestPointers:
    """Tests for the claim pointer table."""

    def test_generate_pointers(self):
        """Test pointers for known names."""
        assert generate_pointers(["name", "gpa"]) == [
            f"/credentialSubject/{SCHEMA_ORG}name",
            f"/credentialSubject/{EXAMPLE_ORG}gpa",
        ]

    def test_nested_pointer(self):
        """Test a pointer into the degree object."""
        assert SELECTIVE_POINTERS["university"].pointer == (
            f"/credentialSubject/{EXAMPLE_ORG}degree/{EXAMPLE_ORG}university"
        )

    def test_unknown_names_are_skipped(self, caplog):
        """Test that unknown names are logged and skipped."""
        with caplog.at_level(logging.WARNING):
            pointers = generate_pointers(["shoeSize", "name"])

        assert pointers == [f"/credentialSubject/{SCHEMA_ORG}name"]
        assert "shoeSize" in caplog.text

    def test_selective_fields(self):
        """Test which known claims a credential carries."""
        credential = unsigned_credential()
        assert selective_fields(credential) == ["name", "gpa"]


class TestNormalizeClaims:
    """Tests for claim normalization."""

    def test_expands_terms(self):
        """Test compact claims expand to IRI keys."""
        subject = normalize_claims({
            "subjectId": "did:example:alice",
            "name": "Alice",
            "gpa": 3.5,
            "degree": {"university": "Example University"},
        })

        assert subject == {
            "id": "did:example:alice",
            f"{SCHEMA_ORG}name": "Alice",
            f"{EXAMPLE_ORG}gpa": 3.5,
            f"{EXAMPLE_ORG}degree": {
                f"{EXAMPLE_ORG}type": "BachelorDegree",
                f"{EXAMPLE_ORG}university": "Example University",
            },
        }

    def test_certification_defaults(self):
        """Test the certification type default."""
        subject = normalize_claims({"certification": {"authority": "Board"}})
        certification = subject[f"{EXAMPLE_ORG}certification"]
        assert certification[f"{EXAMPLE_ORG}type"] == "ProfessionalCertification"
        assert certification[f"{EXAMPLE_ORG}authority"] == "Board"

    def test_other_keys_copied(self):
        """Test that unknown claims are kept unchanged."""
        assert normalize_claims({"nickname": "Al"}) == {"nickname": "Al"}


class TestSelectiveDisclosureDeriver:
    """Tests for deriving reduced credentials."""

    def test_hide_gpa(self):
        """Test hiding a top-level compact claim."""
        derived = derive(unsigned_credential(), ["gpa"])

        assert isinstance(derived, DerivedCredential)
        assert derived.credential_subject == {"id": "sub-1", "name": "Ann"}
        assert derived.hidden_fields == ["gpa"]
        assert derived.derived_from == "cred-1"
        assert derived.derivation_type == "field-removal"
        assert derived.id.startswith("cred-1-derived-")

    def test_source_is_not_modified(self):
        """Test that derivation works on a copy."""
        credential = unsigned_credential()
        derive(credential, ["gpa", "name"])
        assert credential["credentialSubject"] == {"id": "sub-1", "name": "Ann", "gpa": "18"}

    def test_nested_claim_keeps_siblings(self, issued_credential):
        """Test that hiding a nested claim leaves the rest of its object."""
        derived = derive(issued_credential, ["university"])
        degree = derived.credential_subject[f"{EXAMPLE_ORG}degree"]

        assert f"{EXAMPLE_ORG}university" not in degree
        assert degree[f"{EXAMPLE_ORG}graduationDate"] == "2024-06-30"
        assert derived.credential_subject[f"{SCHEMA_ORG}name"] == "Alice Example"

    def test_unknown_and_absent_names_ignored(self):
        """Test that only removed names are recorded, once each."""
        derived = derive(unsigned_credential(), ["gpa", "shoeSize", "university", "gpa"])
        assert derived.hidden_fields == ["gpa"]

    def test_hide_nothing(self):
        """Test that an empty hide set keeps every claim."""
        derived = derive(unsigned_credential(), [])
        assert derived.credential_subject == unsigned_credential()["credentialSubject"]
        assert derived.hidden_fields == []

    @pytest.mark.parametrize("hide", [["name"], ["gpa"], ["name", "gpa"]])
    def test_every_unhidden_claim_survives(self, issued_credential, hide):
        """Test that exactly the hidden claims are removed."""
        derived = derive(issued_credential, hide)
        original = issued_credential.credential_subject

        for name in ("name", "gpa"):
            key = SELECTIVE_POINTERS[name].path[0]
            if name in hide:
                assert key not in derived.credential_subject
            else:
                assert derived.credential_subject[key] == original[key]

    def test_derived_proof(self, issued_credential):
        """Test the derived proof shape."""
        derived = derive(issued_credential, ["gpa"])
        proof = derived.proof
        original_value = issued_credential.proof["proofValue"]

        assert "proofValue" not in proof
        assert proof["_derivedProof"] is True
        assert proof["_originalProof"] == f"{original_value[:20]}..."
        assert proof["proofPurpose"] == "assertionMethod"
        assert check_integrity(derived.to_dict()).valid is True

    def test_rederive_keeps_origin(self, issued_credential):
        """Test that deriving twice points at the issued credential."""
        first = derive(issued_credential, ["gpa"])
        second = derive(first, ["name"])

        assert second.derived_from == issued_credential.id
        assert second.hidden_fields == ["gpa", "name"]

    def test_missing_subject_raises(self):
        """Test that a credential without credentialSubject is rejected."""
        credential = unsigned_credential()
        del credential["credentialSubject"]

        with pytest.raises(StructuralError):
            SelectiveDisclosureDeriver().derive(credential, ["gpa"])

    def test_custom_pointer_table(self):
        """Test a deriver with its own vocabulary."""
        from vp_verifier.disclosure import ClaimPointer

        deriver = SelectiveDisclosureDeriver({"nick": ClaimPointer("nick", ("nickname",))})
        credential = unsigned_credential()
        credential["credentialSubject"]["nickname"] = "Annie"

        derived = deriver.derive(credential, ["nick", "gpa"])

        assert "nickname" not in derived.credential_subject
        assert derived.credential_subject["gpa"] == "18"
        assert derived.hidden_fields == ["nick"]
