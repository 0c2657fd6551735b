"""
Tests for the access gate (certauth.auth.deps).

Tests cover:
- Bearer header parsing
- Each rejection reason
- The 2x2 of credential validity and session activeness
- Activity touch side effect
- Fail-closed behaviour when the registry cannot answer
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import jwt
import pytest

from certauth.auth.deps import (
    GateState,
    RejectReason,
    evaluate_credential,
    extract_bearer_token,
)
from certauth.auth.registry import RegistryUnavailableError, SessionRegistry
from certauth.auth.service import JWT_ALGORITHM
from certauth.core.settings import settings


def _header(token: str) -> str:
    return f"Bearer {token}"


def _signed(claims: dict, key: str = None) -> str:
    return jwt.encode(claims, key or settings.jwt_secret_key, algorithm=JWT_ALGORITHM)


class TestExtractBearerToken:
    """Tests for extract_bearer_token."""

    def test_bearer(self):
        assert extract_bearer_token("Bearer abc.def") == "abc.def"

    def test_scheme_is_case_insensitive(self):
        assert extract_bearer_token("bearer abc") == "abc"

    @pytest.mark.parametrize(
        "header",
        [None, "", "Bearer", "Bearer ", "Basic dXNlcjpwYXNz", "Token abc", "abc"],
    )
    def test_missing_or_wrong_scheme(self, header):
        assert extract_bearer_token(header) is None


class TestRejections:
    """Each gate step rejects with its own reason."""

    def test_no_header(self, auth_service, registry):
        decision = evaluate_credential(None, auth_service, registry)

        assert decision.state == GateState.REJECTED
        assert decision.reason == RejectReason.NO_CREDENTIAL
        assert decision.message == "No credential provided"
        assert decision.admin is None

    def test_wrong_scheme(self, auth_service, registry):
        decision = evaluate_credential("Basic abc", auth_service, registry)
        assert decision.reason == RejectReason.NO_CREDENTIAL

    def test_garbage_token(self, auth_service, registry):
        decision = evaluate_credential(_header("garbage"), auth_service, registry)

        assert decision.reason == RejectReason.INVALID_CREDENTIAL
        assert decision.message == "Invalid or expired credential"

    def test_expired_token_with_live_session(self, auth_service, registry):
        """Token expiry rejects regardless of registry state."""
        registry.create("s1", "1")
        token = _signed(
            {
                "sub": "1",
                "jti": "s1",
                "type": "access",
                "exp": datetime.now(timezone.utc) - timedelta(seconds=5),
            }
        )

        decision = evaluate_credential(_header(token), auth_service, registry)

        assert decision.reason == RejectReason.INVALID_CREDENTIAL

    def test_reset_token_is_not_admitted(self, auth_service, alice, registry):
        reset_token = auth_service.create_password_reset_token(alice.email)

        decision = evaluate_credential(_header(reset_token), auth_service, registry)

        assert decision.reason == RejectReason.INVALID_CREDENTIAL

    def test_token_without_subject(self, auth_service, registry):
        registry.create("s1", "1")
        token = _signed({"jti": "s1", "type": "access"})

        decision = evaluate_credential(_header(token), auth_service, registry)

        assert decision.reason == RejectReason.INVALID_CREDENTIAL

    def test_token_without_session_claim(self, auth_service, registry):
        token = _signed({"sub": "1", "type": "access"})

        decision = evaluate_credential(_header(token), auth_service, registry)

        assert decision.reason == RejectReason.SESSION_REVOKED

    def test_revoked_session(self, auth_service, alice, registry):
        token, _, session = auth_service.create_access_token(alice)
        registry.revoke_by_credential_claim(session.session_id)

        decision = evaluate_credential(_header(token), auth_service, registry)

        assert decision.reason == RejectReason.SESSION_REVOKED
        assert decision.message == "Session revoked, please reauthenticate"

    def test_registry_unavailable_fails_closed(self, auth_service, alice):
        token, _, _ = auth_service.create_access_token(alice)
        broken = MagicMock(spec=SessionRegistry)
        broken.is_active.side_effect = RegistryUnavailableError("store down")

        decision = evaluate_credential(_header(token), auth_service, broken)

        assert decision.admitted is False
        assert decision.reason == RejectReason.SESSION_UNVERIFIABLE
        broken.touch.assert_not_called()

    def test_rejection_maps_to_401(self, auth_service, registry):
        exc = evaluate_credential(None, auth_service, registry).to_http_exception()

        assert exc.status_code == 401
        assert exc.detail == {"message": "No credential provided", "reason": "no_credential"}
        assert exc.headers == {"WWW-Authenticate": "Bearer"}


class TestGateConsistency:
    """Admitted iff the credential is valid AND its session is active."""

    @pytest.mark.parametrize(
        "valid,active,admitted",
        [
            (True, True, True),
            (True, False, False),
            (False, True, False),
            (False, False, False),
        ],
    )
    def test_combinations(self, auth_service, alice, registry, valid, active, admitted):
        token, _, session = auth_service.create_access_token(alice)

        if not valid:
            claims = jwt.decode(token, options={"verify_signature": False})
            token = _signed(claims, key="not-the-signing-key")
        if not active:
            registry.revoke_by_credential_claim(session.session_id)

        decision = evaluate_credential(_header(token), auth_service, registry)

        assert decision.admitted is admitted
        if not valid:
            assert decision.reason == RejectReason.INVALID_CREDENTIAL
        elif not active:
            assert decision.reason == RejectReason.SESSION_REVOKED


class TestAdmission:
    """Admitted requests carry claims and record activity."""

    def test_admitted_claims(self, auth_service, alice, registry):
        token, _, session = auth_service.create_access_token(alice)

        decision = evaluate_credential(_header(token), auth_service, registry)

        assert decision.state == GateState.ADMITTED
        assert decision.reason is None
        assert decision.admin.owner_id == alice.owner_id
        assert decision.admin.username == "alice"
        assert decision.admin.email == "alice@example.com"
        assert decision.admin.session_id == session.session_id

    def test_admission_touches_session(self, auth_service, alice, registry):
        token, _, first = auth_service.create_access_token(alice)
        _, _, second = auth_service.create_access_token(alice)
        assert registry.list_for_owner(alice.owner_id)[0].session_id == second.session_id

        evaluate_credential(_header(token), auth_service, registry)

        assert registry.list_for_owner(alice.owner_id)[0].session_id == first.session_id

    def test_touch_failure_does_not_block(self, auth_service, alice):
        token, _, _ = auth_service.create_access_token(alice)
        flaky = MagicMock(spec=SessionRegistry)
        flaky.is_active.return_value = True
        flaky.touch.side_effect = RuntimeError("boom")

        decision = evaluate_credential(_header(token), auth_service, flaky)

        assert decision.admitted is True
