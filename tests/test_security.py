"""
Tests for token verification, request correlation and configuration checks.
"""

import time

import jwt
import pytest
from fastapi import HTTPException

from shared.config.logging import mask_token
from shared.config.settings import Settings, settings
from shared.security.auth import (
    JWTTokenVerifier,
    TokenVerificationError,
    get_bearer_token,
    sign_access_token,
)


class TestJWTTokenVerifier:
    """Test the verifier shared by the REST API and the gateway handshake."""

    def test_valid_token_resolves_subject(self):
        token = sign_access_token("u1")
        assert JWTTokenVerifier().verify(token) == "u1"

    def test_expired_token(self):
        token = sign_access_token("u1", ttl_seconds=-10)
        with pytest.raises(TokenVerificationError) as exc_info:
            JWTTokenVerifier().verify(token)
        assert exc_info.value.reason == "token_expired"
        assert exc_info.value.message == "Token has expired"

    def test_wrong_secret(self):
        token = sign_access_token("u1")
        verifier = JWTTokenVerifier(secret="another-secret-another-secret-12")
        with pytest.raises(TokenVerificationError) as exc_info:
            verifier.verify(token)
        assert exc_info.value.reason == "invalid_token"

    def test_missing_token(self):
        with pytest.raises(TokenVerificationError) as exc_info:
            JWTTokenVerifier().verify(None)
        assert exc_info.value.reason == "missing_token"

    def test_missing_subject(self):
        now = int(time.time())
        token = jwt.encode(
            {
                "iss": settings.jwt_issuer,
                "aud": settings.jwt_audience,
                "iat": now,
                "exp": now + 60,
            },
            settings.jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(TokenVerificationError) as exc_info:
            JWTTokenVerifier().verify(token)
        assert exc_info.value.reason == "invalid_claims"

    def test_wrong_audience(self):
        token = sign_access_token("u1")
        with pytest.raises(TokenVerificationError):
            JWTTokenVerifier(audience="someone-else").verify(token)


class TestBearerToken:

    def test_extracts_token(self):
        assert get_bearer_token("Bearer abc.def") == "abc.def"

    @pytest.mark.parametrize("header", [None, "", "Basic dXNlcg=="])
    def test_rejects_missing_or_malformed(self, header):
        with pytest.raises(HTTPException) as exc_info:
            get_bearer_token(header)
        assert exc_info.value.status_code == 401


class TestMaskToken:

    def test_masks_long_tokens(self):
        assert mask_token("abcdefghijkl") == "abcdefgh..."

    def test_short_and_missing(self):
        assert mask_token("abc") == "***"
        assert mask_token(None) == "<no-token>"


class TestProductionSecrets:

    def test_development_passes(self):
        assert Settings(environment="development").validate_production_secrets() == []

    def test_weak_production_config_reported(self):
        errors = Settings(
            environment="production",
            jwt_secret="secret",
            debug=True,
            allowed_origins="",
        ).validate_production_secrets()
        assert len(errors) == 3

    def test_cors_origins_from_env_list(self):
        config = Settings(allowed_origins="https://a.example, https://b.example")
        assert config.cors_origins == ["https://a.example", "https://b.example"]


class TestCorrelationIdMiddleware:

    def test_echoes_request_id(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_generates_request_id(self, client):
        response = client.get("/health")
        assert response.headers["X-Request-ID"]

    def test_replaces_unsafe_request_id(self, client):
        response = client.get("/health", headers={"X-Request-ID": "bad id with spaces"})
        assert response.headers["X-Request-ID"] != "bad id with spaces"
        assert len(response.headers["X-Request-ID"]) == 32
