"""
Tests for the identity providers.

The REST providers run against httpx.MockTransport handlers that mimic
the Supabase GoTrue and Appwrite Account APIs.
"""

import json

import httpx
import pytest

from app.core.config import Settings
from app.core.exceptions import AuthenticationError, ResolutionError
from app.services.identity import (
    AppwriteIdentityProvider,
    MockIdentityProvider,
    MockUserDirectory,
    SupabaseIdentityProvider,
    create_identity_provider,
)

SUPABASE_USER = {
    "id": "8d0fd2b3-9ca7-4d9e-a95f-9e13dded323e",
    "email": "owner@restaurant.com",
    "user_metadata": {"full_name": "Priya Sharma", "avatar_url": "https://cdn.example.com/p.png"},
}

APPWRITE_ACCOUNT = {
    "$id": "65f1c0a2e8d4",
    "email": "owner@restaurant.com",
    "name": "Priya Sharma",
    "prefs": {},
}


def supabase_provider(handler) -> SupabaseIdentityProvider:
    return SupabaseIdentityProvider(
        url="https://abc.supabase.co",
        anon_key="anon-key",
        transport=httpx.MockTransport(handler),
    )


def appwrite_provider(handler) -> AppwriteIdentityProvider:
    return AppwriteIdentityProvider(
        endpoint="https://cloud.appwrite.io/v1",
        project_id="restaurantos",
        transport=httpx.MockTransport(handler),
    )


class TestMockIdentityProvider:

    @pytest.mark.asyncio
    async def test_signup_then_login(self):
        provider = MockIdentityProvider(MockUserDirectory())

        created = await provider.create_identity("Owner@Restaurant.com", "secret123", "Priya")
        session = await provider.create_session("owner@restaurant.com", "secret123")

        assert session.identity == created
        assert session.identity.email == "owner@restaurant.com"
        assert (await provider.get_current_session()) == session

    @pytest.mark.asyncio
    async def test_directory_shared_sessions_separate(self):
        directory = MockUserDirectory()
        first = MockIdentityProvider(directory)
        second = MockIdentityProvider(directory)
        await first.create_identity("owner@restaurant.com", "secret123", "Priya")

        await second.create_session("owner@restaurant.com", "secret123")

        assert await first.get_current_session() is None
        assert await second.get_current_session() is not None

    @pytest.mark.asyncio
    async def test_destroy_session(self):
        provider = MockIdentityProvider(MockUserDirectory())
        await provider.create_identity("owner@restaurant.com", "secret123", "Priya")
        await provider.create_session("owner@restaurant.com", "secret123")

        await provider.destroy_session()

        assert await provider.get_current_session() is None

    def test_passwords_stored_as_bcrypt_hashes(self):
        directory = MockUserDirectory()
        directory.register("owner@restaurant.com", "secret123", "Priya")

        stored = directory._accounts["owner@restaurant.com"].password_hash

        assert stored.startswith("$2")
        assert "secret123" not in stored
        assert directory.authenticate("owner@restaurant.com", "secret123").email == "owner@restaurant.com"
        with pytest.raises(AuthenticationError):
            directory.authenticate("owner@restaurant.com", "secret124")

    @pytest.mark.asyncio
    async def test_outage_on_passive_lookup_is_resolution_error(self):
        provider = MockIdentityProvider(MockUserDirectory(), failure_rate=1.0)

        with pytest.raises(ResolutionError):
            await provider.get_current_session()


class TestSupabaseIdentityProvider:

    @pytest.mark.asyncio
    async def test_create_session_parses_token_response(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["grant_type"] = request.url.params.get("grant_type")
            seen["apikey"] = request.headers.get("apikey")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "access_token": "jwt-token",
                "token_type": "bearer",
                "expires_in": 3600,
                "expires_at": 1893456000,
                "refresh_token": "refresh",
                "user": SUPABASE_USER,
            })

        provider = supabase_provider(handler)
        session = await provider.create_session("owner@restaurant.com", "secret123")

        assert seen == {
            "path": "/auth/v1/token",
            "grant_type": "password",
            "apikey": "anon-key",
            "body": {"email": "owner@restaurant.com", "password": "secret123"},
        }
        assert session.access_token == "jwt-token"
        assert session.identity.id == SUPABASE_USER["id"]
        assert session.identity.full_name == "Priya Sharma"
        assert session.identity.avatar_url == "https://cdn.example.com/p.png"
        assert session.expires_at.year == 2030
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_rejected_credentials(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={
                "code": 400,
                "error_code": "invalid_credentials",
                "msg": "Invalid login credentials",
            })

        provider = supabase_provider(handler)

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.create_session("owner@restaurant.com", "wrong")

        assert exc_info.value.code == "invalid_credentials"
        assert exc_info.value.message == "Invalid login credentials"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"access_token": "jwt-token", "expires_at": "soon", "user": SUPABASE_USER},
            {"access_token": "jwt-token", "user": {"id": "u1", "email": "a@"}},
        ],
    )
    async def test_malformed_token_response_is_authentication_error(self, body):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=body)

        provider = supabase_provider(handler)

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.create_session("owner@restaurant.com", "secret123")

        assert exc_info.value.code == "bad_response"

    @pytest.mark.asyncio
    async def test_restore_session_switches_bearer_token(self):
        tokens = iter(["first-token", "second-token"])
        bearers = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/auth/v1/token":
                return httpx.Response(200, json={"access_token": next(tokens), "user": SUPABASE_USER})
            bearers.append(request.headers.get("authorization"))
            return httpx.Response(200, json=SUPABASE_USER)

        provider = supabase_provider(handler)
        first = await provider.create_session("owner@restaurant.com", "secret123")
        await provider.create_session("owner@restaurant.com", "secret123")

        provider.restore_session(first)
        await provider.get_current_session()
        provider.restore_session(None)

        assert bearers == ["Bearer first-token"]
        assert await provider.get_current_session() is None

    @pytest.mark.asyncio
    async def test_legacy_error_shape(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={
                "error": "invalid_grant",
                "error_description": "Invalid login credentials",
            })

        provider = supabase_provider(handler)

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.create_session("owner@restaurant.com", "wrong")

        assert exc_info.value.code == "invalid_grant"

    @pytest.mark.asyncio
    async def test_unreachable_backend(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = supabase_provider(handler)

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.create_session("owner@restaurant.com", "secret123")

        assert exc_info.value.code == "service_unavailable"

    @pytest.mark.asyncio
    async def test_signup_duplicate_email(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/auth/v1/signup"
            assert json.loads(request.content)["data"] == {"full_name": "Priya"}
            return httpx.Response(422, json={
                "code": 422,
                "error_code": "user_already_exists",
                "msg": "User already registered",
            })

        provider = supabase_provider(handler)

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.create_identity("owner@restaurant.com", "secret123", "Priya")

        assert exc_info.value.code == "user_already_exists"

    @pytest.mark.asyncio
    async def test_signup_returns_bare_user_when_confirmation_required(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=SUPABASE_USER)

        provider = supabase_provider(handler)
        identity = await provider.create_identity("owner@restaurant.com", "secret123", "Priya")

        assert identity.id == SUPABASE_USER["id"]

    @pytest.mark.asyncio
    async def test_current_session_without_token_skips_network(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        provider = supabase_provider(handler)

        assert await provider.get_current_session() is None

    @pytest.mark.asyncio
    async def test_current_session_revalidates_token(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.url.path, request.headers.get("authorization")))
            if request.url.path == "/auth/v1/token":
                return httpx.Response(200, json={"access_token": "jwt-token", "user": SUPABASE_USER})
            if len(calls) == 2:
                return httpx.Response(200, json=SUPABASE_USER)
            return httpx.Response(401, json={"msg": "JWT expired"})

        provider = supabase_provider(handler)
        await provider.create_session("owner@restaurant.com", "secret123")

        session = await provider.get_current_session()
        assert session.identity.email == "owner@restaurant.com"
        assert calls[1] == ("/auth/v1/user", "Bearer jwt-token")

        assert await provider.get_current_session() is None
        assert await provider.get_current_session() is None
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_malformed_user_payload_is_resolution_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/auth/v1/token":
                return httpx.Response(200, json={"access_token": "jwt-token", "user": SUPABASE_USER})
            return httpx.Response(200, json={"unexpected": True})

        provider = supabase_provider(handler)
        await provider.create_session("owner@restaurant.com", "secret123")

        with pytest.raises(ResolutionError):
            await provider.get_current_session()

    @pytest.mark.asyncio
    async def test_destroy_session_sends_bearer(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/auth/v1/token":
                return httpx.Response(200, json={"access_token": "jwt-token", "user": SUPABASE_USER})
            seen.append((request.method, request.url.path, request.headers.get("authorization")))
            return httpx.Response(204)

        provider = supabase_provider(handler)
        await provider.create_session("owner@restaurant.com", "secret123")

        await provider.destroy_session()

        assert seen == [("POST", "/auth/v1/logout", "Bearer jwt-token")]
        assert await provider.get_current_session() is None

    @pytest.mark.asyncio
    async def test_password_reset_passes_redirect(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["redirect_to"] = request.url.params.get("redirect_to")
            return httpx.Response(200, json={})

        provider = supabase_provider(handler)
        await provider.request_password_reset("owner@restaurant.com", "https://app.example.com/reset")

        assert seen == {"path": "/auth/v1/recover", "redirect_to": "https://app.example.com/reset"}

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            SupabaseIdentityProvider(url="", anon_key="")


class TestAppwriteIdentityProvider:

    @pytest.mark.asyncio
    async def test_create_session_then_fetch_account(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, request.headers.get("x-appwrite-project")))
            if request.url.path == "/v1/account/sessions/email":
                return httpx.Response(
                    201,
                    json={"$id": "sess1", "userId": APPWRITE_ACCOUNT["$id"], "expire": "2030-01-01T00:00:00.000+00:00"},
                )
            return httpx.Response(200, json=APPWRITE_ACCOUNT)

        provider = appwrite_provider(handler)
        session = await provider.create_session("owner@restaurant.com", "secret123")

        assert seen == [
            ("POST", "/v1/account/sessions/email", "restaurantos"),
            ("GET", "/v1/account", "restaurantos"),
        ]
        assert session.identity.id == APPWRITE_ACCOUNT["$id"]
        assert session.identity.full_name == "Priya Sharma"
        assert session.expires_at.year == 2030
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_guest_has_no_session(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "User (role: guests) missing scope (account)", "type": "general_unauthorized_scope"})

        provider = appwrite_provider(handler)

        assert await provider.get_current_session() is None

    @pytest.mark.asyncio
    async def test_rejected_credentials(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Invalid credentials.", "type": "user_invalid_credentials"})

        provider = appwrite_provider(handler)

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.create_session("owner@restaurant.com", "wrong")

        assert exc_info.value.code == "user_invalid_credentials"

    @pytest.mark.asyncio
    async def test_signup_duplicate_email(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["userId"] == "unique()"
            assert body["name"] == "Priya"
            return httpx.Response(409, json={"message": "A user with the same email already exists.", "type": "user_already_exists"})

        provider = appwrite_provider(handler)

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.create_identity("owner@restaurant.com", "secret123", "Priya")

        assert exc_info.value.code == "user_already_exists"

    @pytest.mark.asyncio
    async def test_restore_session_swaps_cookie_jar(self):
        cookies = iter(["first", "second"])
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/account/sessions/email":
                return httpx.Response(
                    201,
                    json={"$id": "sess", "userId": APPWRITE_ACCOUNT["$id"]},
                    headers={"set-cookie": f"a_session_restaurantos={next(cookies)}; Path=/"},
                )
            sent.append(request.headers.get("cookie"))
            return httpx.Response(200, json=APPWRITE_ACCOUNT)

        provider = appwrite_provider(handler)
        first = await provider.create_session("owner@restaurant.com", "secret123")
        await provider.create_session("owner@restaurant.com", "secret123")

        provider.restore_session(first)
        await provider.get_current_session()

        assert sent[-1] == "a_session_restaurantos=first"

        provider.restore_session(None)
        await provider.get_current_session()

        assert sent[-1] is None

    @pytest.mark.asyncio
    async def test_destroy_session_server_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            return httpx.Response(500, json={"message": "Server Error", "type": "general_unknown"})

        provider = appwrite_provider(handler)

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.destroy_session()

        assert exc_info.value.code == "general_unknown"


class TestFactory:

    def test_development_always_uses_mock(self):
        settings = Settings(env_mode="development", auth_provider="supabase")
        assert create_identity_provider(settings).provider_name == "mock"

    def test_production_supabase(self):
        settings = Settings(
            env_mode="production",
            auth_provider="supabase",
            supabase_url="https://abc.supabase.co",
            supabase_anon_key="anon-key",
        )
        assert create_identity_provider(settings).provider_name == "supabase"

    def test_staging_appwrite(self):
        settings = Settings(env_mode="staging", auth_provider="appwrite", appwrite_project_id="restaurantos")
        assert create_identity_provider(settings).provider_name == "appwrite"

    def test_missing_production_config_reported(self):
        settings = Settings(env_mode="production", auth_provider="supabase", supabase_url=None, supabase_anon_key=None)
        assert settings.validate_production_config() == ["SUPABASE_URL", "SUPABASE_ANON_KEY"]
