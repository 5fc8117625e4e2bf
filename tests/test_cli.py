"""Tests for the vp-verify command line."""

import json

import pytest
import respx
from click.testing import CliRunner
from conftest import unsigned_credential
from httpx import Response

from vp_verifier.cli import main
from vp_verifier.integrity import hash_document


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def files(tmp_path, holder, stored_credential_id, issuer_keys, holder_keys):
    """A signed presentation and both DID documents on disk."""
    presentation = holder.create_presentation([stored_credential_id], challenge="abc")
    paths = {
        "presentation": tmp_path / "presentation.json",
        "issuer": tmp_path / "issuer.json",
        "holder": tmp_path / "holder.json",
    }
    paths["presentation"].write_text(json.dumps(presentation.to_dict()))
    paths["issuer"].write_text(json.dumps(issuer_keys.did_document()))
    paths["holder"].write_text(json.dumps(holder_keys.did_document()))
    paths["id"] = presentation.id
    return paths


LIST_URL = "https://university.example/revocation-list"


@pytest.fixture
def published_list(issuer):
    """Serve the issuer's current revocation list."""
    with respx.mock:
        respx.get(LIST_URL).mock(
            side_effect=lambda request: Response(200, json=issuer.revocation_list())
        )
        yield LIST_URL


def verify_args(files, *extra):
    return [
        "verify",
        str(files["presentation"]),
        "--did-document",
        str(files["issuer"]),
        "--did-document",
        str(files["holder"]),
        *extra,
    ]


class TestVerifyCommand:
    """Tests for vp-verify verify."""

    def test_valid(self, runner, files, published_list):
        """Test verifying a valid presentation."""
        result = runner.invoke(
            main,
            verify_args(files, "--challenge", "abc", "--revocation-list", published_list),
        )

        assert result.exit_code == 0
        assert "VALID" in result.output

    def test_json_output(self, runner, files, published_list):
        """Test JSON output."""
        result = runner.invoke(
            main,
            verify_args(
                files, "--challenge", "abc", "--revocation-list", published_list, "--json-output"
            ),
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["verified"] is True
        assert data["presentationId"] == files["id"]
        assert data["revocationStatus"][0]["status"] == "active"

    def test_no_revocation_source_fails_closed(self, runner, files):
        """Test that credentials without a revocation source are not read as active."""
        result = runner.invoke(main, verify_args(files, "--challenge", "abc", "--json-output"))

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["verified"] is False
        assert data["revoked"] is False
        assert data["verificationFailedDue"] == "revocation_check_failed"
        assert data["revocationStatus"][0]["status"] == "check_failed"

    def test_revoked_option_is_presentation_only(self, runner, files, stored_credential_id):
        """Test that --revoked does not answer credential lookups."""
        result = runner.invoke(
            main, verify_args(files, "--revoked", stored_credential_id, "--json-output")
        )

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["revoked"] is False
        assert data["verificationFailedDue"] == "revocation_check_failed"

    def test_challenge_mismatch(self, runner, files):
        """Test that a wrong challenge exits 1."""
        result = runner.invoke(main, verify_args(files, "--challenge", "zzz"))

        assert result.exit_code == 1
        assert "INVALID" in result.output
        assert "Challenge mismatch" in result.output

    def test_revoked(self, runner, files):
        """Test revoking the presentation on the command line."""
        result = runner.invoke(
            main, verify_args(files, "--revoked", files["id"], "--json-output")
        )

        assert result.exit_code == 1
        assert json.loads(result.stdout)["revoked"] is True

    def test_missing_did_documents(self, runner, files):
        """Test that unresolvable keys make the presentation invalid."""
        result = runner.invoke(main, ["verify", str(files["presentation"]), "--json-output"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["checks"]["signature"] is False

    def test_revocation_list(self, runner, files, issuer, stored_credential_id, published_list):
        """Test credential lookups against a published list."""
        issuer.revoke_credential(stored_credential_id)

        result = runner.invoke(
            main, verify_args(files, "--revocation-list", published_list, "--json-output")
        )

        assert result.exit_code == 1
        assert json.loads(result.stdout)["verificationFailedDue"] == "credential_revoked"

    def test_stdin(self, runner, files, published_list):
        """Test reading the presentation from stdin."""
        result = runner.invoke(
            main,
            ["verify", "-", "--did-document", str(files["issuer"]),
             "--did-document", str(files["holder"]), "--revocation-list", published_list],
            input=files["presentation"].read_text(),
        )
        assert result.exit_code == 0

    def test_invalid_json(self, runner, tmp_path):
        """Test that invalid JSON exits 2."""
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        result = runner.invoke(main, ["verify", str(path)])

        assert result.exit_code == 2
        assert "Invalid JSON" in result.output

    def test_missing_file(self, runner):
        """Test a source that does not exist."""
        result = runner.invoke(main, ["verify", "missing.json"])

        assert result.exit_code != 0
        assert "File not found" in result.output


class TestOtherCommands:
    """Tests for derive, hash and pointers."""

    def test_derive_to_stdout(self, runner, tmp_path):
        """Test deriving a credential."""
        path = tmp_path / "credential.json"
        path.write_text(json.dumps(unsigned_credential()))

        result = runner.invoke(main, ["derive", str(path), "--hide", "gpa"])

        assert result.exit_code == 0
        derived = json.loads(result.stdout)
        assert "gpa" not in derived["credentialSubject"]
        assert derived["_hiddenFields"] == ["gpa"]

    def test_derive_to_file(self, runner, tmp_path):
        """Test writing the derived credential to a file."""
        source = tmp_path / "credential.json"
        target = tmp_path / "derived.json"
        source.write_text(json.dumps(unsigned_credential()))

        result = runner.invoke(
            main, ["derive", str(source), "--hide", "name", "--output", str(target)]
        )

        assert result.exit_code == 0
        assert json.loads(target.read_text())["_derivedFrom"] == "cred-1"

    def test_derive_requires_subject(self, runner, tmp_path):
        """Test deriving a document without credentialSubject."""
        path = tmp_path / "credential.json"
        path.write_text(json.dumps({"id": "cred-1"}))

        result = runner.invoke(main, ["derive", str(path), "--hide", "gpa"])

        assert result.exit_code == 2

    def test_hash(self, runner, tmp_path):
        """Test hashing a document with a matching embedded hash."""
        credential = unsigned_credential()
        credential["proof"] = {"dataHash": hash_document(credential)}
        path = tmp_path / "credential.json"
        path.write_text(json.dumps(credential))

        result = runner.invoke(main, ["hash", str(path), "--json-output"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["hash"] == hash_document(credential)
        assert data["valid"] is True

    def test_hash_mismatch(self, runner, tmp_path):
        """Test hashing a tampered document."""
        credential = unsigned_credential()
        credential["proof"] = {"dataHash": "0" * 64}
        path = tmp_path / "credential.json"
        path.write_text(json.dumps(credential))

        result = runner.invoke(main, ["hash", str(path)])

        assert result.exit_code == 1
        assert "Mismatch" in result.output

    def test_pointers(self, runner):
        """Test listing pointers."""
        result = runner.invoke(main, ["pointers", "name", "gpa"])

        assert result.exit_code == 0
        assert "/credentialSubject/http://schema.org/name" in result.output
        assert "/credentialSubject/http://example.org/gpa" in result.output
