#!/usr/bin/env python3
"""Unit tests for OAuth2 Token Management.

Tests cover:
    - Token fetching and caching
    - Token expiration detection
    - Credential rejection and retry on token endpoint failures
    - Safe token identifiers for logging
"""
import hashlib
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from autopilot_cleanup.api.auth import DEFAULT_SCOPE, CachedToken, TokenManager
from autopilot_cleanup.api.exceptions import (
    ConfigurationError,
    InvalidCredentialsError,
    TokenFetchError,
)


def make_session(status: int, json_data: dict | None = None, text: str = ""):
    """Build a mocked aiohttp.ClientSession answering one POST."""
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=json_data or {})
    mock_response.text = AsyncMock(return_value=text)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = MagicMock()
    mock_session.post = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


# ============================================
# CachedToken Tests
# ============================================

class TestCachedToken:
    """Test the CachedToken dataclass."""

    def test_not_expired_when_new(self):
        """Fresh token should not be expired."""
        token = CachedToken(
            access_token="test_token_123",
            expires_at=time.time() + 3600,
        )
        assert not token.is_expired
        assert token.time_remaining > 3500

    def test_expired_when_past(self):
        """Token with past expiration should be expired."""
        token = CachedToken(
            access_token="test_token_123",
            expires_at=time.time() - 100,
        )
        assert token.is_expired
        assert token.time_remaining == 0

    def test_expired_within_buffer(self):
        """A Graph token (3599s TTL) within its ~300s buffer counts as expired."""
        token = CachedToken(
            access_token="test_token_123",
            expires_at=time.time() + 200,
            expires_in=3599,
        )
        assert token.is_expired

    def test_token_id_is_sha256_hash(self):
        """token_id should be SHA-256 hash prefix for safe logging."""
        token = CachedToken(
            access_token="my_secret_token_value",
            expires_at=time.time() + 3600,
        )
        expected_hash = hashlib.sha256(b"my_secret_token_value").hexdigest()[:8]
        assert token.token_id == expected_hash
        assert "my_secret" not in token.token_id


# ============================================
# TokenManager Tests
# ============================================

class TestTokenManager:
    """Test the TokenManager class."""

    @pytest.fixture
    def env_vars(self, monkeypatch):
        """Set required environment variables."""
        monkeypatch.setenv("GRAPH_TENANT_ID", "contoso-tenant")
        monkeypatch.setenv("GRAPH_CLIENT_ID", "test_client_id")
        monkeypatch.setenv("GRAPH_CLIENT_SECRET", "test_client_secret")
        monkeypatch.delenv("GRAPH_TOKEN_URL", raising=False)
        monkeypatch.delenv("GRAPH_SCOPE", raising=False)

    def test_missing_env_vars_raises(self, monkeypatch):
        """Should raise ConfigurationError naming every missing variable."""
        for name in ("GRAPH_TENANT_ID", "GRAPH_CLIENT_ID", "GRAPH_CLIENT_SECRET"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(ConfigurationError) as exc:
            TokenManager()

        assert "GRAPH_CLIENT_ID" in str(exc.value)
        assert set(exc.value.details["missing_keys"]) == {
            "GRAPH_TENANT_ID",
            "GRAPH_CLIENT_ID",
            "GRAPH_CLIENT_SECRET",
        }

    def test_token_url_derived_from_tenant(self, env_vars):
        """Without GRAPH_TOKEN_URL the tenant's v2.0 endpoint is used."""
        manager = TokenManager()
        assert manager.token_url == (
            "https://login.microsoftonline.com/contoso-tenant/oauth2/v2.0/token"
        )
        assert manager.scope == DEFAULT_SCOPE

    def test_explicit_credentials(self, monkeypatch):
        """Should accept explicit credentials over env vars."""
        monkeypatch.delenv("GRAPH_CLIENT_ID", raising=False)

        manager = TokenManager(
            tenant_id="tenant",
            client_id="explicit_id",
            client_secret="explicit_secret",
            token_url="https://explicit.example.com/token",
        )

        assert manager.client_id == "explicit_id"
        assert manager.token_url == "https://explicit.example.com/token"

    async def test_get_token_fetches_new(self, env_vars):
        """First call to get_token should fetch a new token with the Graph scope."""
        manager = TokenManager()
        session = make_session(200, {
            "access_token": "new_access_token_abc123",
            "expires_in": 3599,
            "token_type": "Bearer",
        })

        with patch("aiohttp.ClientSession", return_value=session):
            token = await manager.get_token()

        assert token == "new_access_token_abc123"
        payload = session.post.call_args.kwargs["data"]
        assert payload["grant_type"] == "client_credentials"
        assert payload["scope"] == DEFAULT_SCOPE

    async def test_get_token_returns_cached(self, env_vars):
        """Second call should return cached token without HTTP call."""
        manager = TokenManager()
        manager._cached_token = CachedToken(
            access_token="cached_token_xyz",
            expires_at=time.time() + 3600,
        )

        with patch("aiohttp.ClientSession") as mock_session_cls:
            token = await manager.get_token()
            mock_session_cls.assert_not_called()

        assert token == "cached_token_xyz"

    async def test_invalid_client_raises_without_retry(self, env_vars):
        """invalid_client answers are not retried."""
        manager = TokenManager()
        session = make_session(401, text='{"error":"invalid_client"}')

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(InvalidCredentialsError):
                await manager.get_token()

        assert session.post.call_count == 1

    async def test_server_error_retries_then_fails(self, env_vars):
        """5xx answers are retried with backoff, then TokenFetchError is raised."""
        manager = TokenManager()
        session = make_session(503, text="unavailable")

        with patch("aiohttp.ClientSession", return_value=session), \
                patch("autopilot_cleanup.api.auth.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(TokenFetchError) as exc:
                await manager.get_token()

        assert session.post.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2]
        assert exc.value.details["attempts"] == 3

    async def test_invalidate_clears_cache(self, env_vars):
        """invalidate() should clear the cached token."""
        manager = TokenManager()
        manager._cached_token = CachedToken(
            access_token="cached_token",
            expires_at=time.time() + 3600,
        )

        manager.invalidate()

        assert manager._cached_token is None
        assert manager.token_info is None

    def test_token_info_hides_token(self, env_vars):
        """token_info should expose the hash prefix, never the token."""
        manager = TokenManager()
        test_token = "a_very_long_token_that_should_be_hashed"
        manager._cached_token = CachedToken(
            access_token=test_token,
            expires_at=time.time() + 3600,
        )

        info = manager.token_info

        assert not info["is_expired"]
        assert info["token_id"] == hashlib.sha256(test_token.encode()).hexdigest()[:8]
        assert "a_very_long" not in str(info)
