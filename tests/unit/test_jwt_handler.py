"""
Unit tests for JWT Handler.

Tests access token creation, validation and expiry against the injected clock.
"""

import logging

import pytest
from jose import jwt

from identity.auth import JWTHandler
from identity.auth.jwt_handler import ALGORITHM
from identity.config import DEFAULT_SECRET_KEY
from identity.errors import TokenInvalid, TokenExpired


class TestJWTHandler:
    """Tests for JWTHandler class."""

    @pytest.mark.unit
    def test_create_access_token(self, jwt_handler, clock):
        """Test creating an access token."""
        token, payload = jwt_handler.create_access_token(user_id="user-1", role="user")

        assert isinstance(token, str)
        assert token.count(".") == 2
        assert payload.iat == int(clock.now)
        assert payload.exp == int(clock.now) + 900

    @pytest.mark.unit
    def test_verify_valid_access_token(self, jwt_handler):
        """Test verifying a valid access token."""
        token, _ = jwt_handler.create_access_token(user_id="user-1", role="admin")

        payload = jwt_handler.verify_token(token)

        assert payload.user_id == "user-1"
        assert payload.role == "admin"
        assert payload.token_type == "access"
        assert payload.jti

    @pytest.mark.unit
    def test_unique_jti(self, jwt_handler):
        _, first = jwt_handler.create_access_token(user_id="user-1", role="user")
        _, second = jwt_handler.create_access_token(user_id="user-1", role="user")

        assert first.jti != second.jti

    @pytest.mark.unit
    def test_valid_until_expiry(self, jwt_handler, clock):
        """Token is accepted one second before its expiry."""
        token, _ = jwt_handler.create_access_token(user_id="user-1", role="user")
        clock.advance(899)

        assert jwt_handler.verify_token(token).user_id == "user-1"

    @pytest.mark.unit
    @pytest.mark.parametrize("elapsed", [900, 901, 3600])
    def test_rejected_at_or_past_expiry(self, jwt_handler, clock, elapsed):
        """Tokens at or past their expiry are rejected as expired."""
        token, _ = jwt_handler.create_access_token(user_id="user-1", role="user")
        clock.advance(elapsed)

        with pytest.raises(TokenExpired):
            jwt_handler.verify_token(token)

    @pytest.mark.unit
    def test_verify_invalid_token(self, jwt_handler):
        """Test verifying a malformed token."""
        with pytest.raises(TokenInvalid):
            jwt_handler.verify_token("invalid.token.here")

    @pytest.mark.unit
    def test_verify_empty_token(self, jwt_handler):
        with pytest.raises(TokenInvalid):
            jwt_handler.verify_token("")

    @pytest.mark.unit
    def test_verify_tampered_token(self, jwt_handler):
        """Test verifying a tampered token."""
        token, _ = jwt_handler.create_access_token(user_id="user-1", role="user")
        header, body, signature = token.split(".")
        tampered = f"{header}.{body}.{signature[:-4]}AAAA"

        with pytest.raises(TokenInvalid):
            jwt_handler.verify_token(tampered)

    @pytest.mark.unit
    def test_verify_wrong_secret(self, jwt_handler, clock):
        """Test that a token from another secret is rejected."""
        other = JWTHandler(secret_key="another_secret_key_for_testing_only", clock=clock)
        token, _ = other.create_access_token(user_id="user-1", role="user")

        with pytest.raises(TokenInvalid):
            jwt_handler.verify_token(token)

    @pytest.mark.unit
    def test_wrong_token_type(self, jwt_handler, test_config, clock):
        """A correctly signed token of another type is not an access token."""
        now = int(clock.now)
        token = jwt.encode(
            {"sub": "user-1", "role": "user", "exp": now + 60, "iat": now, "jti": "x", "type": "refresh"},
            test_config["jwt_secret"],
            algorithm=ALGORITHM
        )

        with pytest.raises(TokenInvalid, match="type"):
            jwt_handler.verify_token(token)

    @pytest.mark.unit
    def test_missing_claims(self, jwt_handler, test_config):
        token = jwt.encode({"role": "user"}, test_config["jwt_secret"], algorithm=ALGORITHM)

        with pytest.raises(TokenInvalid):
            jwt_handler.verify_token(token)

    @pytest.mark.unit
    def test_custom_expiration_time(self, jwt_handler, clock):
        token, payload = jwt_handler.create_access_token(user_id="user-1", role="user", expires_in=60)

        assert payload.exp == int(clock.now) + 60

    @pytest.mark.unit
    def test_default_secret_warning(self, caplog):
        """Test warning when using the default secret."""
        with caplog.at_level(logging.WARNING):
            JWTHandler(secret_key=DEFAULT_SECRET_KEY)

        assert "default JWT secret" in caplog.text
