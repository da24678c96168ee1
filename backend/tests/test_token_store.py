"""Tests for encrypted token storage."""

import pytest
from cryptography.fernet import Fernet
from sqlalchemy import select

from models import Integration
from models.analytics import AuthTokenDetails
from services.token_store import TokenDecryptionError, TokenStore, TokenStoreError


class TestEncryption:
    @pytest.mark.parametrize("plaintext", ["x", "ya29.a0AfH6SMB-token", "é✓ unicode", "t" * 1500])
    def test_round_trip(self, token_store, plaintext):
        assert token_store.decrypt(token_store.encrypt(plaintext)) == plaintext

    def test_encryption_is_not_deterministic(self, token_store):
        first = token_store.encrypt("same-token")
        second = token_store.encrypt("same-token")

        assert first != second
        assert token_store.decrypt(first) == "same-token"
        assert token_store.decrypt(second) == "same-token"

    def test_ciphertext_does_not_contain_plaintext(self, token_store):
        assert "secret-value" not in token_store.encrypt("secret-value")

    def test_decrypt_with_other_key_fails(self, token_store, session_factory):
        other = TokenStore(Fernet.generate_key().decode(), session_factory)
        ciphertext = other.encrypt("token")

        with pytest.raises(TokenDecryptionError):
            token_store.decrypt(ciphertext)

    def test_decrypt_garbage_fails(self, token_store):
        with pytest.raises(TokenDecryptionError):
            token_store.decrypt("not-a-fernet-token")


class TestKeyConfiguration:
    def test_missing_key_is_rejected(self, session_factory):
        with pytest.raises(TokenStoreError):
            TokenStore("", session_factory)

    def test_missing_key_allowed_in_development(self, session_factory):
        store = TokenStore(None, session_factory, allow_ephemeral_key=True)
        assert store.decrypt(store.encrypt("token")) == "token"

    def test_invalid_key_is_rejected(self, session_factory):
        with pytest.raises(TokenStoreError):
            TokenStore("too-short", session_factory)


class TestRecordUpdates:
    @pytest.mark.asyncio
    async def test_save_rotated_tokens(self, factory, token_store, session_factory):
        user = await factory.user()
        integration = await factory.integration(user, refresh_needed=True)

        expires_at = await token_store.save_rotated_tokens(
            integration.id,
            AuthTokenDetails(access_token="rotated", refresh_token="rotated-refresh", expires_in=7200),
        )

        async with session_factory() as db:
            stored = (await db.execute(select(Integration).where(Integration.id == integration.id))).scalar_one()
        assert token_store.decrypt(stored.token) == "rotated"
        assert token_store.decrypt(stored.refresh_token) == "rotated-refresh"
        assert stored.refresh_needed is False
        assert stored.token_expires_at is not None
        assert expires_at > integration.created_at

    @pytest.mark.asyncio
    async def test_save_without_new_refresh_token_keeps_old_one(self, factory, token_store, session_factory):
        user = await factory.user()
        integration = await factory.integration(user, refresh_token="original-refresh")

        await token_store.save_rotated_tokens(
            integration.id, AuthTokenDetails(access_token="rotated", refresh_token=None)
        )

        async with session_factory() as db:
            stored = (await db.execute(select(Integration).where(Integration.id == integration.id))).scalar_one()
        assert token_store.decrypt(stored.refresh_token) == "original-refresh"

    @pytest.mark.asyncio
    async def test_mark_refresh_needed(self, factory, token_store, session_factory):
        user = await factory.user()
        integration = await factory.integration(user)

        await token_store.mark_refresh_needed(integration.id)

        async with session_factory() as db:
            stored = (await db.execute(select(Integration).where(Integration.id == integration.id))).scalar_one()
        assert stored.refresh_needed is True
