"""Tests for token login, profile and token revocation."""

from crowdvine.models.security import LoginAttempt

from tests.conftest import api_client, create_user


async def login(client, email, password):
    return await client.post("/api/auth/token", data={"username": email, "password": password})


class TestTokenLogin:
    async def test_login_returns_bearer_token(self, member, unauthenticated_client):
        response = await login(unauthenticated_client, "member@example.com", "testpassword")

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] > 0

        me = await unauthenticated_client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"}
        )
        assert me.status_code == 200
        assert me.json()["email"] == "member@example.com"

    async def test_email_is_case_insensitive(self, member, unauthenticated_client):
        response = await login(unauthenticated_client, "Member@Example.COM", "testpassword")
        assert response.status_code == 200

    async def test_wrong_password(self, member, unauthenticated_client):
        response = await login(unauthenticated_client, "member@example.com", "wrong")
        assert response.status_code == 401

    async def test_unknown_user(self, unauthenticated_client):
        response = await login(unauthenticated_client, "ghost@example.com", "whatever")
        assert response.status_code == 401

    async def test_lockout_after_repeated_failures(self, member, unauthenticated_client):
        for _ in range(LoginAttempt.MAX_FAILED_ATTEMPTS):
            await login(unauthenticated_client, "member@example.com", "wrong")

        response = await login(unauthenticated_client, "member@example.com", "testpassword")
        assert response.status_code == 429
        assert "Retry-After" in response.headers

    async def test_success_clears_failures(self, member, unauthenticated_client):
        await login(unauthenticated_client, "member@example.com", "wrong")
        await login(unauthenticated_client, "member@example.com", "testpassword")

        assert await LoginAttempt.find(LoginAttempt.email == "member@example.com").count() == 0


class TestProfile:
    async def test_me_includes_membership_level(self, client):
        response = await client.get("/api/auth/me")
        data = response.json()
        assert data["role"] == "user"
        assert data["membership_level"] == "basic"
        assert data["is_admin"] is False

    async def test_me_requires_token(self, unauthenticated_client):
        response = await unauthenticated_client.get("/api/auth/me")
        assert response.status_code == 401

    async def test_update_address(self, client):
        response = await client.patch(
            "/api/auth/me",
            json={
                "full_name": "Member Name",
                "address": {"street": "Storgatan 2", "postcode": "411 38", "city": "Göteborg", "country_code": "SE"},
            },
        )

        assert response.status_code == 200
        assert response.json()["full_name"] == "Member Name"
        assert response.json()["address"]["city"] == "Göteborg"

    async def test_garbage_token_is_anonymous(self, unauthenticated_client):
        response = await unauthenticated_client.get(
            "/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401


class TestRevocation:
    async def test_revoked_token_stops_working(self, member):
        async with api_client(member) as ac:
            assert (await ac.get("/api/auth/me")).status_code == 200

            response = await ac.post("/api/auth/revoke")
            assert response.json()["message"] == "Successfully logged out"

            assert (await ac.get("/api/auth/me")).status_code == 401

    async def test_password_change_revokes_token(self, init_test_db):
        user = await create_user("changer@example.com", password="oldpassword")
        async with api_client(user) as ac:
            response = await ac.put(
                "/api/auth/password",
                json={"current_password": "oldpassword", "new_password": "newpassword123"},
            )
            assert response.status_code == 200
            assert (await ac.get("/api/auth/me")).status_code == 401

        async with api_client() as anon:
            relogin = await login(anon, "changer@example.com", "newpassword123")
        assert relogin.status_code == 200

    async def test_password_change_checks_current(self, client):
        response = await client.put(
            "/api/auth/password",
            json={"current_password": "nope", "new_password": "newpassword123"},
        )
        assert response.status_code == 400
