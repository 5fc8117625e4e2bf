"""Tests for published revocation lists."""

import base64
import gzip

import httpx
import pytest
import respx
from httpx import Response

from vp_verifier.errors import RevocationListError
from vp_verifier.revocation import Determined, RevocationRegistry, Undetermined
from vp_verifier.revocation_list import (
    REVOCATION_LIST_TYPE,
    RevocationListClient,
    build_revocation_list,
    decode_revoked_ids,
    encode_revoked_ids,
)

LIST_URL = "https://university.example/revocation-list"
UNIVERSITY = "did:example:university"


@pytest.fixture
def revoked_registry():
    registry = RevocationRegistry()
    registry.revoke("urn:uuid:revoked-1")
    return registry


class TestEncoding:
    """Tests for the encodedList format."""

    def test_decode_encoded(self):
        """Test that encoded ids decode back."""
        assert decode_revoked_ids(encode_revoked_ids(["a", "b"])) == {"a", "b"}

    def test_decode_invalid_base64(self):
        """Test that garbage raises RevocationListError."""
        with pytest.raises(RevocationListError):
            decode_revoked_ids("!!!not base64!!!")

    def test_decode_not_gzip(self):
        """Test that base64 of non-gzip data raises."""
        with pytest.raises(RevocationListError):
            decode_revoked_ids(base64.b64encode(b"plain").decode())

    def test_decode_not_a_list(self):
        """Test that a JSON object is rejected."""
        encoded = base64.b64encode(gzip.compress(b'{"a": 1}')).decode()
        with pytest.raises(RevocationListError, match="array"):
            decode_revoked_ids(encoded)

    def test_build_revocation_list(self, revoked_registry):
        """Test the published list credential."""
        credential = build_revocation_list(revoked_registry, "did:example:university")

        assert credential["id"] == "did:example:university/revocation-list"
        assert REVOCATION_LIST_TYPE in credential["type"]
        assert decode_revoked_ids(credential["credentialSubject"]["encodedList"]) == {
            "urn:uuid:revoked-1"
        }


class TestRevocationListClient:
    """Tests for RevocationListClient."""

    @respx.mock
    def test_revoked_and_active(self, revoked_registry):
        """Test lookups against a fetched list."""
        route = respx.get(LIST_URL).mock(
            return_value=Response(200, json=build_revocation_list(revoked_registry, UNIVERSITY))
        )
        client = RevocationListClient(LIST_URL, UNIVERSITY)

        revoked = client.check_revocation_status("urn:uuid:revoked-1", UNIVERSITY)
        active = client.check_revocation_status("urn:uuid:active-1", UNIVERSITY)

        assert revoked == Determined("urn:uuid:revoked-1", True)
        assert active == Determined("urn:uuid:active-1", False)
        assert route.call_count == 1

    @respx.mock
    def test_cache_disabled(self, revoked_registry):
        """Test that every lookup fetches without the cache."""
        route = respx.get(LIST_URL).mock(
            return_value=Response(200, json=build_revocation_list(revoked_registry, UNIVERSITY))
        )
        client = RevocationListClient(LIST_URL, UNIVERSITY, use_cache=False)
        client.check_revocation_status("a", UNIVERSITY)
        client.check_revocation_status("b", UNIVERSITY)

        assert route.call_count == 2

    @respx.mock
    def test_other_issuer_is_undetermined(self):
        """Test that a list never answers for a credential of another issuer."""
        client = RevocationListClient(LIST_URL, UNIVERSITY)

        status = client.check_revocation_status("urn:uuid:x", "did:example:other")

        assert isinstance(status, Undetermined)
        assert "did:example:other" in status.reason
        assert len(respx.calls) == 0

    @respx.mock
    def test_list_from_wrong_publisher_is_undetermined(self, revoked_registry):
        """Test that a list published by another issuer is rejected."""
        respx.get(LIST_URL).mock(
            return_value=Response(
                200, json=build_revocation_list(revoked_registry, "did:example:other")
            )
        )
        client = RevocationListClient(LIST_URL, UNIVERSITY)

        status = client.check_revocation_status("urn:uuid:x", UNIVERSITY)

        assert isinstance(status, Undetermined)
        assert "did:example:other" in status.reason
        with pytest.raises(RevocationListError, match="published by"):
            client.fetch()

    @respx.mock
    def test_publisher_must_match_without_expected_issuer(self, revoked_registry):
        """Test that the list's own issuer bounds its answers."""
        respx.get(LIST_URL).mock(
            return_value=Response(
                200, json=build_revocation_list(revoked_registry, "did:example:other")
            )
        )
        client = RevocationListClient(LIST_URL)

        assert isinstance(client.check_revocation_status("urn:uuid:x", UNIVERSITY), Undetermined)
        assert client.check_revocation_status("urn:uuid:x", "did:example:other") == Determined(
            "urn:uuid:x", False
        )

    def test_missing_issuer_argument_is_undetermined(self):
        """Test a lookup for a credential without an issuer."""
        status = RevocationListClient(LIST_URL).check_revocation_status("urn:uuid:x")
        assert isinstance(status, Undetermined)

    @respx.mock
    def test_http_error_is_undetermined(self):
        """Test that a server error never reads as active."""
        respx.get(LIST_URL).mock(return_value=Response(500))

        status = RevocationListClient(LIST_URL).check_revocation_status("urn:uuid:1", UNIVERSITY)

        assert isinstance(status, Undetermined)
        assert "500" in status.reason

    @respx.mock
    def test_network_error_is_undetermined(self):
        """Test that a network failure never reads as active."""
        respx.get(LIST_URL).mock(side_effect=httpx.ConnectError("connection refused"))

        status = RevocationListClient(LIST_URL).check_revocation_status("urn:uuid:1", UNIVERSITY)
        assert isinstance(status, Undetermined)

    @respx.mock
    def test_missing_encoded_list(self):
        """Test a list credential without encodedList."""
        respx.get(LIST_URL).mock(
            return_value=Response(200, json={"issuer": UNIVERSITY, "credentialSubject": {}})
        )

        with pytest.raises(RevocationListError, match="encodedList"):
            RevocationListClient(LIST_URL).fetch()

    @respx.mock
    def test_missing_publisher(self, revoked_registry):
        """Test a list credential without an issuer."""
        credential = build_revocation_list(revoked_registry, UNIVERSITY)
        del credential["issuer"]
        respx.get(LIST_URL).mock(return_value=Response(200, json=credential))

        with pytest.raises(RevocationListError, match="issuer"):
            RevocationListClient(LIST_URL).fetch()

    @respx.mock
    def test_invalid_json(self):
        """Test a response that is not JSON."""
        respx.get(LIST_URL).mock(return_value=Response(200, text="<html>"))

        status = RevocationListClient(LIST_URL).check_revocation_status("urn:uuid:1", UNIVERSITY)
        assert isinstance(status, Undetermined)

    @respx.mock
    def test_failure_not_cached(self, revoked_registry):
        """Test that a failed fetch is retried on the next lookup."""
        respx.get(LIST_URL).mock(
            side_effect=[
                Response(503),
                Response(200, json=build_revocation_list(revoked_registry, UNIVERSITY)),
            ]
        )
        client = RevocationListClient(LIST_URL, UNIVERSITY)

        status = client.check_revocation_status("urn:uuid:revoked-1", UNIVERSITY)
        assert isinstance(status, Undetermined)
        assert client.check_revocation_status("urn:uuid:revoked-1", UNIVERSITY).revoked is True
