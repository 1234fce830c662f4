"""Identity store tests."""

from app.crypto.envelope import is_envelope
from app.services.identities import (
    get_identity_by_github_id,
    set_whitelist,
    upsert_identity_from_oauth,
)
from app.services.vault import get_encryptor


class TestUpsertIdentity:
    """OAuth login upserts."""

    async def test_new_identity_starts_unwhitelisted(self, session) -> None:
        """Create new identities without access and with encrypted tokens."""
        identity = await upsert_identity_from_oauth(
            session, github_user_id=42, access_token="gho_a", refresh_token="ghr_a", expires_in=60
        )
        await session.commit()

        assert identity.is_whitelisted is False
        assert is_envelope(identity.github_access_token)
        assert get_encryptor().decrypt(identity.github_refresh_token) == "ghr_a"
        assert identity.github_token_expires_at is not None

    async def test_relogin_keeps_whitelist_and_id(self, session) -> None:
        """Update tokens in place without touching the whitelist flag."""
        first = await upsert_identity_from_oauth(session, github_user_id=42, access_token="gho_a")
        await set_whitelist(session, first.id, True)
        await session.commit()

        second = await upsert_identity_from_oauth(
            session, github_user_id=42, access_token="gho_b", expires_in=None
        )
        await session.commit()

        assert second.id == first.id
        assert second.is_whitelisted is True
        assert get_encryptor().decrypt(second.github_access_token) == "gho_b"
        assert second.github_refresh_token is None
        assert second.github_token_expires_at is None

    async def test_lookup_by_github_id(self, session) -> None:
        """Find identities by GitHub account id."""
        created = await upsert_identity_from_oauth(session, github_user_id=7, access_token="gho")
        await session.commit()

        assert (await get_identity_by_github_id(session, 7)).id == created.id
        assert await get_identity_by_github_id(session, 8) is None
