"""Tests for authentication endpoints, JWT and password hashing."""

import logging
from datetime import timedelta

import pytest
from httpx import AsyncClient

from orthoplan.auth.jwt import create_access_token, decode_token
from orthoplan.auth.password import hash_password, verify_password
from orthoplan.services.catalog import seed_catalog

from conftest import TEST_PASSWORD


@pytest.mark.auth
class TestAuthEndpoints:

    async def test_first_user_becomes_super_admin(self, client: AsyncClient, session_factory):
        async with session_factory() as session:
            await session.run_sync(seed_catalog)
            await session.commit()

        response = await client.post(
            "/api/auth/register",
            json={
                "email": "founder@example.com",
                "password": "SecurePassword123!",
                "name": "Founder",
                "tenant_name": "Smile Group",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["is_super_admin"] is True
        assert data["user"]["applications"] == ["planner", "portal"]
        assert {g["role"] for g in data["user"]["grants"]} == {"ADMIN"}
        assert decode_token(data["access_token"])["tenant_id"] == data["user"]["tenant_id"]

    async def test_first_user_without_catalog(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={"email": "founder@example.com", "password": "SecurePassword123!", "name": "F"},
        )
        assert response.status_code == 201
        assert response.json()["user"]["is_super_admin"] is True
        assert response.json()["user"]["grants"] == []

    async def test_later_users_are_not_super_admin(self, client: AsyncClient, world):
        response = await client.post(
            "/api/auth/register",
            json={"email": "late@example.com", "password": "SecurePassword123!", "name": "Late"},
        )
        assert response.status_code == 201
        user = response.json()["user"]
        assert user["is_super_admin"] is False
        assert user["applications"] == []

    async def test_register_duplicate_email(self, client: AsyncClient, world):
        response = await client.post(
            "/api/auth/register",
            json={
                "email": world.users.dentist.email,
                "password": "AnotherPassword123!",
                "name": "Another User",
            },
        )

        assert response.status_code == 400
        assert "already registered" in response.json()["error"]["message"].lower()

    async def test_register_short_password(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={"email": "x@example.com", "password": "short", "name": "X"},
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_login_success(self, client: AsyncClient, world):
        response = await client.post(
            "/api/auth/login",
            json={"email": world.users.dentist.email, "password": TEST_PASSWORD},
        )

        assert response.status_code == 200
        data = response.json()
        assert "access_token" in data
        assert data["user"]["email"] == world.users.dentist.email
        assert data["user"]["grants"] == [
            {
                "application": "planner",
                "role": "DENTIST",
                "permissions": sorted([
                    "delete:contract", "delete:patient", "delete:planning",
                    "read:contract", "read:patient", "read:planning",
                    "write:contract", "write:patient", "write:planning",
                ]),
            }
        ]

    async def test_login_wrong_password(self, client: AsyncClient, world, caplog):
        caplog.set_level(logging.WARNING, logger="orthoplan.routers.auth")
        response = await client.post(
            "/api/auth/login",
            json={"email": world.users.dentist.email, "password": "wrongpassword"},
        )
        assert response.status_code == 401

        failures = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any(world.users.dentist.email in r.getMessage() for r in failures)
        assert all("wrongpassword" not in r.getMessage() for r in caplog.records)

    async def test_login_unknown_email(self, client: AsyncClient, world):
        response = await client.post(
            "/api/auth/login",
            json={"email": "ghost@example.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 401

    async def test_login_token_works(self, client: AsyncClient, world):
        login = await client.post(
            "/api/auth/login",
            json={"email": world.users.reader.email, "password": TEST_PASSWORD},
        )
        token = login.json()["access_token"]

        response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["id"] == world.users.reader.id

    async def test_get_current_user(self, client: AsyncClient, world, auth_headers):
        response = await client.get("/api/auth/me", headers=auth_headers(world.users.portal_admin))

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == world.users.portal_admin.email
        assert data["tenant_id"] == world.tenant_a.id
        assert data["applications"] == ["portal"]


@pytest.mark.unit
class TestTokens:

    def test_round_trip_claims(self):
        token = create_access_token("user-1", "tenant-1")
        payload = decode_token(token)
        assert payload["sub"] == "user-1"
        assert payload["tenant_id"] == "tenant-1"
        assert payload["type"] == "access"
        assert "permissions" not in payload

    def test_expired_token_decodes_empty(self):
        token = create_access_token("user-1", "tenant-1", expires_delta=timedelta(seconds=-1))
        assert decode_token(token) == {}

    def test_tampered_token_decodes_empty(self):
        token = create_access_token("user-1", "tenant-1")
        header_and_claims = token.rsplit(".", 1)[0]
        assert decode_token(f"{header_and_claims}.forged-signature") == {}


@pytest.mark.unit
class TestPasswords:

    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_malformed_hash_is_rejected(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")
