"""Service registry tests."""

import base64

import pytest

from app.services.key_rotation import Urgency, get_rotation_status
from app.services.security import generate_api_key, hash_api_key, verify_api_key
from app.services.service_registry import (
    ServiceRegistryError,
    activate_service,
    authenticate_service,
    create_service,
    deactivate_service,
    list_services,
    parse_service_credentials,
    rotate_service_api_key,
)


def _basic(pair: str) -> str:
    return "Basic " + base64.b64encode(pair.encode("utf-8")).decode("ascii")


class TestParseServiceCredentials:
    """Authorization header parsing."""

    def test_bearer(self) -> None:
        """Split a bearer pair on the first colon."""
        credentials = parse_service_credentials("Bearer ci-runner:svc_abc:def")

        assert credentials.service_identifier == "ci-runner"
        assert credentials.api_key == "svc_abc:def"

    def test_basic(self) -> None:
        """Decode a basic pair."""
        credentials = parse_service_credentials(_basic("ci-runner:svc_abc"))

        assert credentials.service_identifier == "ci-runner"
        assert credentials.api_key == "svc_abc"

    @pytest.mark.parametrize(
        "header",
        [
            None,
            "",
            "Bearer",
            "Bearer no-separator",
            "Bearer :svc_abc",
            "Bearer ci-runner:",
            "Basic !!!not-base64",
            "Token ci-runner:svc_abc",
        ],
    )
    def test_malformed(self, header) -> None:
        """Reject missing, unknown or incomplete credentials."""
        assert parse_service_credentials(header) is None


class TestApiKeys:
    """Key generation and hashing."""

    def test_generated_keys_are_prefixed_and_unique(self) -> None:
        """Generate distinct prefixed keys."""
        first, second = generate_api_key(), generate_api_key()

        assert first.startswith("svc_")
        assert first != second

    def test_hash_verifies_only_the_original(self) -> None:
        """Accept the original key and reject others."""
        key = generate_api_key()
        stored = hash_api_key(key)

        assert stored != key
        assert verify_api_key(key, stored)
        assert not verify_api_key(generate_api_key(), stored)
        assert not verify_api_key(key, "not-a-hash")


class TestServiceRegistry:
    """Registration, authentication and lifecycle."""

    async def test_create_and_authenticate(self, session) -> None:
        """Authenticate with the key returned at registration."""
        service, raw_key = await create_service(session, "ci-runner", description="CI")
        await session.commit()

        result = await authenticate_service(session, "ci-runner", raw_key)

        assert result.authenticated
        assert result.service.id == service.id
        assert result.service.last_used_at is not None
        assert service.api_key_hash != raw_key

    async def test_create_records_rotation(self, session) -> None:
        """Track the new key's rotation schedule."""
        await create_service(session, "ci-runner")
        await session.commit()

        status = await get_rotation_status(session, "service_api_key:ci-runner")

        assert status.rotation_interval_days == 90
        assert status.urgency is Urgency.OK

    async def test_rejects_duplicate_and_colon(self, session) -> None:
        """Refuse identifiers that collide or cannot be parsed back."""
        await create_service(session, "ci-runner")

        with pytest.raises(ServiceRegistryError):
            await create_service(session, "ci-runner")
        with pytest.raises(ServiceRegistryError):
            await create_service(session, "bad:name")

    async def test_wrong_key_and_unknown_service(self, session) -> None:
        """Reject wrong keys and unknown services."""
        await create_service(session, "ci-runner", api_key="svc_right")

        wrong = await authenticate_service(session, "ci-runner", "svc_wrong")
        unknown = await authenticate_service(session, "ghost", "svc_right")

        assert not wrong.authenticated
        assert not unknown.authenticated
        assert unknown.error == "Service not found"

    async def test_inactive_service(self, session) -> None:
        """Reject a deactivated service until it is re-enabled."""
        _, raw_key = await create_service(session, "ci-runner")
        await deactivate_service(session, "ci-runner")

        assert not (await authenticate_service(session, "ci-runner", raw_key)).authenticated
        assert await list_services(session, active_only=True) == []

        await activate_service(session, "ci-runner")
        assert (await authenticate_service(session, "ci-runner", raw_key)).authenticated

    async def test_rotate_replaces_key(self, session) -> None:
        """Stop accepting the old key after rotation."""
        _, old_key = await create_service(session, "ci-runner")

        new_key = await rotate_service_api_key(session, "ci-runner")

        assert not (await authenticate_service(session, "ci-runner", old_key)).authenticated
        assert (await authenticate_service(session, "ci-runner", new_key)).authenticated

    async def test_rotate_unknown_service(self, session) -> None:
        """Refuse to rotate a key for an unknown service."""
        with pytest.raises(ServiceRegistryError):
            await rotate_service_api_key(session, "ghost")
