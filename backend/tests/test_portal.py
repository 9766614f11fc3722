"""Portal administration: permission catalog, roles, clinics, users, AI keys."""

import pytest
from httpx import AsyncClient

from orthoplan.models.access import UserAppAccess


@pytest.mark.integration
class TestPermissionsAndRoles:

    async def test_any_portal_user_lists_permissions(self, client: AsyncClient, world, auth_headers):
        response = await client.get("/api/permissions", headers=auth_headers(world.users.portal_admin))
        assert response.status_code == 200
        pairs = {(p["action"], p["resource"]) for p in response.json()}
        assert ("manage", "all") in pairs
        assert ("read", "patient") in pairs

    async def test_planner_only_user_cannot_list_permissions(
        self, client: AsyncClient, world, auth_headers
    ):
        response = await client.get("/api/permissions", headers=auth_headers(world.users.dentist))
        assert response.status_code == 403

    async def test_list_roles_requires_manage_role(self, client: AsyncClient, world, auth_headers):
        ok = await client.get("/api/roles", headers=auth_headers(world.users.portal_admin))
        assert ok.status_code == 200
        assert {r["name"] for r in ok.json()} >= {"ADMIN", "DENTIST", "READER"}

    async def test_create_update_delete_role(self, client: AsyncClient, world, auth_headers):
        headers = auth_headers(world.users.portal_admin)
        read_patient = world.permissions[("read", "patient")].id
        write_patient = world.permissions[("write", "patient")].id

        created = await client.post(
            "/api/roles",
            json={"name": "ASSISTANT", "permission_ids": [read_patient]},
            headers=headers,
        )
        assert created.status_code == 201
        role = created.json()
        assert [(p["action"], p["resource"]) for p in role["permissions"]] == [("read", "patient")]

        updated = await client.put(
            f"/api/roles/{role['id']}",
            json={"permission_ids": [read_patient, write_patient], "description": "Chairside"},
            headers=headers,
        )
        assert updated.status_code == 200
        assert updated.json()["description"] == "Chairside"
        assert len(updated.json()["permissions"]) == 2

        deleted = await client.delete(f"/api/roles/{role['id']}", headers=headers)
        assert deleted.status_code == 204
        roles = await client.get("/api/roles", headers=headers)
        assert "ASSISTANT" not in {r["name"] for r in roles.json()}

    async def test_duplicate_role_name(self, client: AsyncClient, world, auth_headers):
        response = await client.post(
            "/api/roles", json={"name": "DENTIST"}, headers=auth_headers(world.users.portal_admin)
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ROLE_EXISTS"

    async def test_unknown_permission_id(self, client: AsyncClient, world, auth_headers):
        response = await client.post(
            "/api/roles",
            json={"name": "BROKEN", "permission_ids": ["missing"]},
            headers=auth_headers(world.users.portal_admin),
        )
        assert response.status_code == 400

    async def test_admin_role_is_protected(self, client: AsyncClient, world, auth_headers):
        response = await client.delete(
            f"/api/roles/{world.roles['ADMIN'].id}", headers=auth_headers(world.users.super_admin)
        )
        assert response.status_code == 400

    async def test_deleting_role_revokes_grants(self, client: AsyncClient, world, auth_headers):
        reader_headers = auth_headers(world.users.reader, world.clinic_a1)
        assert (await client.get("/api/patients/", headers=reader_headers)).status_code == 200

        response = await client.delete(
            f"/api/roles/{world.roles['READER'].id}", headers=auth_headers(world.users.portal_admin)
        )
        assert response.status_code == 204

        after = await client.get("/api/patients/", headers=reader_headers)
        assert after.status_code == 403


@pytest.mark.integration
class TestClinics:

    async def test_list_is_membership_based(self, client: AsyncClient, world, auth_headers):
        admin = await client.get("/api/clinics/", headers=auth_headers(world.users.portal_admin))
        assert [c["name"] for c in admin.json()] == ["Clinic A1"]

        super_admin = await client.get("/api/clinics/", headers=auth_headers(world.users.super_admin))
        assert [c["name"] for c in super_admin.json()] == ["Clinic A1", "Clinic A2"]

    async def test_create_in_caller_tenant(self, client: AsyncClient, world, auth_headers):
        response = await client.post(
            "/api/clinics/",
            json={"name": "Clinic A3", "city": "Porto", "tenant_id": world.tenant_b.id},
            headers=auth_headers(world.users.portal_admin),
        )
        assert response.status_code == 201
        assert response.json()["tenant_id"] == world.tenant_a.id
        assert response.json()["city"] == "Porto"

    async def test_update_and_cross_tenant(self, client: AsyncClient, world, auth_headers):
        headers = auth_headers(world.users.portal_admin)
        response = await client.put(
            f"/api/clinics/{world.clinic_a2.id}", json={"nickname": "Downtown"}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["nickname"] == "Downtown"
        assert response.json()["name"] == "Clinic A2"

        foreign = await client.put(
            f"/api/clinics/{world.clinic_b1.id}", json={"nickname": "Mine"}, headers=headers
        )
        assert foreign.status_code == 404

    async def test_delete_clinic_with_patients_conflicts(
        self, client: AsyncClient, world, auth_headers
    ):
        headers = auth_headers(world.users.portal_admin)
        response = await client.delete(f"/api/clinics/{world.clinic_a1.id}", headers=headers)
        assert response.status_code == 409

        empty = await client.post("/api/clinics/", json={"name": "Empty"}, headers=headers)
        deleted = await client.delete(f"/api/clinics/{empty.json()['id']}", headers=headers)
        assert deleted.status_code == 204

    async def test_manage_clinic_required(self, client: AsyncClient, world, auth_headers, session_factory):
        # Portal access with a role lacking manage:clinic
        async with session_factory() as session:
            session.add(UserAppAccess(
                user_id=world.users.reader.id,
                application_id=world.applications["portal"].id,
                role_id=world.roles["READER"].id,
            ))
            await session.commit()

        headers = auth_headers(world.users.reader)
        assert (await client.get("/api/clinics/", headers=headers)).status_code == 200
        response = await client.post("/api/clinics/", json={"name": "Nope"}, headers=headers)
        assert response.status_code == 403


@pytest.mark.integration
class TestUsers:

    async def test_list_only_own_tenant(self, client: AsyncClient, world, auth_headers):
        response = await client.get("/api/users/", headers=auth_headers(world.users.portal_admin))
        assert response.status_code == 200
        emails = {u["email"] for u in response.json()}
        assert world.users.dentist.email in emails
        assert world.users.outsider.email not in emails

        dentist = next(u for u in response.json() if u["email"] == world.users.dentist.email)
        assert dentist["role_id"] == world.roles["DENTIST"].id
        assert dentist["clinic_ids"] == [world.clinic_a1.id]

    async def test_requires_manage_user(self, client: AsyncClient, world, auth_headers):
        response = await client.get("/api/users/", headers=auth_headers(world.users.dentist))
        assert response.status_code == 403

    async def test_create_user_with_role_and_clinics(self, client: AsyncClient, world, auth_headers):
        response = await client.post(
            "/api/users/",
            json={
                "email": "new.dentist@a.example.com",
                "password": "SecurePassword123!",
                "name": "New Dentist",
                "clinic_ids": [world.clinic_a1.id, world.clinic_a2.id],
                "role_id": world.roles["DENTIST"].id,
            },
            headers=auth_headers(world.users.portal_admin),
        )
        assert response.status_code == 201
        user = response.json()
        assert user["tenant_id"] == world.tenant_a.id
        assert user["role_id"] == world.roles["DENTIST"].id
        assert user["clinic_ids"] == sorted([world.clinic_a1.id, world.clinic_a2.id])

        login = await client.post(
            "/api/auth/login",
            json={"email": "new.dentist@a.example.com", "password": "SecurePassword123!"},
        )
        assert login.json()["user"]["applications"] == ["planner"]

    async def test_create_user_with_foreign_clinic(self, client: AsyncClient, world, auth_headers):
        response = await client.post(
            "/api/users/",
            json={
                "email": "sneaky@a.example.com",
                "password": "SecurePassword123!",
                "name": "Sneaky",
                "clinic_ids": [world.clinic_b1.id],
            },
            headers=auth_headers(world.users.portal_admin),
        )
        assert response.status_code == 400

    async def test_removing_role_revokes_access_immediately(
        self, client: AsyncClient, world, auth_headers
    ):
        dentist_headers = auth_headers(world.users.dentist, world.clinic_a1)
        assert (await client.get("/api/patients/", headers=dentist_headers)).status_code == 200

        response = await client.put(
            f"/api/users/{world.users.dentist.id}",
            json={"role_id": ""},
            headers=auth_headers(world.users.portal_admin),
        )
        assert response.status_code == 200
        assert response.json()["role_id"] is None

        # Same token, next request
        after = await client.get("/api/patients/", headers=dentist_headers)
        assert after.status_code == 403

    async def test_changing_role_changes_permissions(self, client: AsyncClient, world, auth_headers):
        await client.put(
            f"/api/users/{world.users.reader.id}",
            json={"role_id": world.roles["MANAGER"].id},
            headers=auth_headers(world.users.portal_admin),
        )
        response = await client.get(
            "/api/patients/", headers=auth_headers(world.users.reader, world.clinic_a1)
        )
        assert len(response.json()) == 5

    async def test_sync_clinic_memberships(self, client: AsyncClient, world, auth_headers):
        response = await client.put(
            f"/api/users/{world.users.manager.id}",
            json={"clinic_ids": [world.clinic_a2.id]},
            headers=auth_headers(world.users.portal_admin),
        )
        assert response.json()["clinic_ids"] == [world.clinic_a2.id]

        dropped = await client.get(
            "/api/patients/", headers=auth_headers(world.users.manager, world.clinic_a1)
        )
        assert dropped.status_code == 403

    async def test_cannot_touch_other_tenant_user(self, client: AsyncClient, world, auth_headers):
        response = await client.put(
            f"/api/users/{world.users.outsider.id}",
            json={"name": "Renamed"},
            headers=auth_headers(world.users.portal_admin),
        )
        assert response.status_code == 404

    async def test_delete_user(self, client: AsyncClient, world, auth_headers):
        headers = auth_headers(world.users.portal_admin)

        owner = await client.delete(f"/api/users/{world.users.dentist.id}", headers=headers)
        assert owner.status_code == 409

        response = await client.delete(f"/api/users/{world.users.no_access.id}", headers=headers)
        assert response.status_code == 204

        gone = await client.get("/api/auth/me", headers=auth_headers(world.users.no_access))
        assert gone.status_code == 401

    async def test_cannot_delete_self(self, client: AsyncClient, world, auth_headers):
        response = await client.delete(
            f"/api/users/{world.users.portal_admin.id}",
            headers=auth_headers(world.users.portal_admin),
        )
        assert response.status_code == 400

    async def test_portal_admin_cannot_promote_self(self, client: AsyncClient, world, auth_headers):
        admin = world.users.portal_admin
        response = await client.put(
            f"/api/users/{admin.id}",
            json={"is_super_admin": True},
            headers=auth_headers(admin),
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

        # Still bound to its own clinics and locked out of AI keys
        me = await client.get("/api/auth/me", headers=auth_headers(admin))
        assert me.json()["is_super_admin"] is False
        keys = await client.get("/api/admin/ai-keys/", headers=auth_headers(admin))
        assert keys.status_code == 403

    async def test_portal_admin_cannot_create_super_admin(
        self, client: AsyncClient, world, auth_headers
    ):
        response = await client.post(
            "/api/users/",
            json={
                "email": "crowned@a.example.com",
                "password": "SecurePassword123!",
                "name": "Crowned",
                "is_super_admin": True,
            },
            headers=auth_headers(world.users.portal_admin),
        )
        assert response.status_code == 403

        listed = await client.get("/api/users/", headers=auth_headers(world.users.portal_admin))
        assert "crowned@a.example.com" not in {u["email"] for u in listed.json()}

    async def test_portal_admin_cannot_modify_super_admin(
        self, client: AsyncClient, world, auth_headers
    ):
        headers = auth_headers(world.users.portal_admin)
        target = world.users.super_admin.id

        demote = await client.put(
            f"/api/users/{target}", json={"is_super_admin": False}, headers=headers
        )
        assert demote.status_code == 403
        rename = await client.put(f"/api/users/{target}", json={"name": "Renamed"}, headers=headers)
        assert rename.status_code == 403
        delete = await client.delete(f"/api/users/{target}", headers=headers)
        assert delete.status_code == 403

    async def test_super_admin_can_promote(self, client: AsyncClient, world, auth_headers):
        response = await client.put(
            f"/api/users/{world.users.portal_admin.id}",
            json={"is_super_admin": True},
            headers=auth_headers(world.users.super_admin),
        )
        assert response.status_code == 200
        assert response.json()["is_super_admin"] is True


@pytest.mark.integration
class TestAiKeys:

    async def test_super_admin_only(self, client: AsyncClient, world, auth_headers):
        response = await client.get("/api/admin/ai-keys/", headers=auth_headers(world.users.portal_admin))
        assert response.status_code == 403

    async def test_keys_are_masked(self, client: AsyncClient, world, auth_headers):
        headers = auth_headers(world.users.super_admin)
        created = await client.post(
            "/api/admin/ai-keys/",
            json={"provider": "gemini", "key": "sk-abcdefghijklmnop"},
            headers=headers,
        )
        assert created.status_code == 201
        key = created.json()
        assert key["masked_key"] == "sk-a***********mnop"
        assert "sk-abcdefghijklmnop" not in created.text

        updated = await client.put(
            f"/api/admin/ai-keys/{key['id']}", json={"is_active": False}, headers=headers
        )
        assert updated.json()["is_active"] is False

        listed = await client.get("/api/admin/ai-keys/", headers=headers)
        assert [k["provider"] for k in listed.json()] == ["gemini"]

        deleted = await client.delete(f"/api/admin/ai-keys/{key['id']}", headers=headers)
        assert deleted.status_code == 204
