from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from pydantic import ValidationError

from nativeauth.auth.models.flow import AuthCallbackData, AuthorizationRequest
from nativeauth.auth.models.session import (
    AuthSession,
    DeviceInfo,
    PKCEChallenge,
    SessionStatus,
    session_passphrase,
    utcnow,
)
from nativeauth.auth.models.tokens import TokenRequest, TokenResponse


class TestAuthSession:
    def test_expiry_must_follow_creation(self, device_info) -> None:
        # Arrange
        now = utcnow()

        # Act & Assert
        with pytest.raises(ValidationError):
            AuthSession(
                id="s-1",
                state="x" * 32,
                created_at=now,
                expires_at=now,
                device_info=device_info,
            )

    def test_short_state_is_rejected(self, device_info) -> None:
        now = utcnow()

        with pytest.raises(ValidationError):
            AuthSession(
                id="s-1",
                state="too-short",
                created_at=now,
                expires_at=now + timedelta(minutes=10),
                device_info=device_info,
            )

    def test_json_round_trip_is_deep_equal(self, make_session) -> None:
        # Arrange
        session = make_session()

        # Act
        restored = AuthSession.model_validate_json(session.model_dump_json())

        # Assert
        assert restored == session

    def test_passphrase_combines_device_and_state(self, make_session) -> None:
        session = make_session()

        assert session.passphrase == f"dev-1-{session.state}"
        assert session_passphrase("dev-1", "abc") == "dev-1-abc"

    def test_expired_session_is_not_valid(self, make_session) -> None:
        # Arrange
        session = make_session()
        later = session.expires_at + timedelta(seconds=1)

        # Assert
        assert session.is_valid()
        assert session.is_expired(later)
        assert not session.is_valid(later)

    def test_failed_session_is_not_valid(self, make_session) -> None:
        session = make_session().model_copy(update={"status": SessionStatus.FAILED})

        assert not session.is_valid()
        assert not session.is_authenticated()


class TestDeviceInfo:
    def test_device_info_is_immutable(self, device_info) -> None:
        with pytest.raises(ValidationError):
            device_info.device_id = "other"

    def test_device_id_is_required(self) -> None:
        with pytest.raises(ValidationError):
            DeviceInfo(device_id="", device_name="Test", platform="linux")


class TestPKCEChallengeModel:
    @pytest.mark.parametrize("verifier", ["a" * 42, "a" * 129, "a" * 42 + " "])
    def test_invalid_verifiers_are_rejected(self, verifier) -> None:
        with pytest.raises(ValidationError):
            PKCEChallenge(verifier=verifier, challenge="c", expires_at=utcnow())

    def test_only_s256_is_supported(self) -> None:
        with pytest.raises(ValidationError):
            PKCEChallenge(
                verifier="a" * 64, challenge="c", method="plain", expires_at=utcnow()
            )


class TestFlowModels:
    def test_authorization_url_carries_challenge_and_state(self) -> None:
        # Arrange
        request = AuthorizationRequest(
            authorization_endpoint="https://auth.example.com/authorize",
            client_id="desktop-client",
            redirect_uri="nativeauth://auth/callback",
            code_challenge="challenge-123",
            code_challenge_method="S256",
            state="state-456",
            scope="openid",
        )

        # Act
        url = request.build_authorization_url()

        # Assert
        query = parse_qs(urlparse(url).query)
        assert url.startswith("https://auth.example.com/authorize?")
        assert query["response_type"] == ["code"]
        assert query["code_challenge"] == ["challenge-123"]
        assert query["code_challenge_method"] == ["S256"]
        assert query["state"] == ["state-456"]
        assert query["redirect_uri"] == ["nativeauth://auth/callback"]
        assert query["scope"] == ["openid"]

    def test_endpoint_with_existing_query(self) -> None:
        request = AuthorizationRequest(
            authorization_endpoint="https://auth.example.com/authorize?tenant=a",
            client_id="c",
            redirect_uri="nativeauth://auth/callback",
            code_challenge="x",
            code_challenge_method="S256",
            state="s",
        )

        assert "?tenant=a&response_type=code" in request.build_authorization_url()

    def test_callback_data_from_params(self) -> None:
        data = AuthCallbackData.from_params({"code": "abc", "state": "xyz"})

        assert data == AuthCallbackData(code="abc", state="xyz")
        assert data.is_success()
        assert not data.is_error()

    def test_error_callback_data(self) -> None:
        data = AuthCallbackData.from_params(
            {"error": "access_denied", "state": "xyz"}
        )

        assert data.is_error()
        assert not data.is_success()


class TestTokenModels:
    def test_token_request_form_data(self) -> None:
        request = TokenRequest(
            code="abc",
            redirect_uri="nativeauth://auth/callback",
            code_verifier="v" * 64,
            session_id="s-1",
            client_id="desktop-client",
        )

        assert request.to_form_data() == {
            "grant_type": "authorization_code",
            "code": "abc",
            "redirect_uri": "nativeauth://auth/callback",
            "code_verifier": "v" * 64,
            "client_id": "desktop-client",
        }

    def test_token_response_to_auth_token(self) -> None:
        # Arrange
        response = TokenResponse(
            access_token="access", refresh_token="refresh", expires_in=3600
        )

        # Act
        token = response.to_auth_token()

        # Assert
        assert token.access_token == "access"
        assert token.refresh_token == "refresh"
        assert token.token_type == "Bearer"
        assert not token.is_expired()
        assert token.expires_at <= utcnow() + timedelta(seconds=3600)

    def test_error_response_cannot_become_token(self) -> None:
        response = TokenResponse(error="invalid_grant")

        with pytest.raises(ValueError):
            response.to_auth_token()
