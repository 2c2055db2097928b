"""
PayDesk - User Management Tests
"""

import pytest


API = "/api/v1"


class TestUserAccess:

    @pytest.mark.asyncio
    async def test_list_requires_admin(self, client, employee_headers):
        response = await client.get(f"{API}/users", headers=employee_headers)

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "INSUFFICIENT_PERMISSIONS"

    @pytest.mark.asyncio
    async def test_list_and_search(self, client, admin_headers, employee_user, other_employee):
        everyone = await client.get(f"{API}/users", headers=admin_headers)
        by_code = await client.get(f"{API}/users", params={"search": "EMP0002"}, headers=admin_headers)
        employees = await client.get(f"{API}/users", params={"role": "employee"}, headers=admin_headers)

        assert everyone.json()["pagination"]["total"] == 3
        assert [u["email"] for u in by_code.json()["items"]] == ["meera@example.com"]
        assert employees.json()["pagination"]["total"] == 2

    @pytest.mark.asyncio
    async def test_owner_reads_own_account(self, client, employee_user, employee_headers, other_employee):
        own = await client.get(f"{API}/users/{employee_user.id}", headers=employee_headers)
        other = await client.get(f"{API}/users/{other_employee.id}", headers=employee_headers)

        assert own.status_code == 200
        assert own.json()["bank_ifsc_code"] == "SBIN0000123"
        assert other.status_code == 403


class TestProfileUpdates:

    @pytest.mark.asyncio
    async def test_owner_updates_profile(self, client, employee_user, employee_headers):
        response = await client.put(
            f"{API}/users/{employee_user.id}",
            json={"position": "Senior Developer", "bank_name": "City Bank"},
            headers=employee_headers,
        )

        assert response.status_code == 200
        assert response.json()["position"] == "Senior Developer"
        assert response.json()["bank_name"] == "City Bank"

    @pytest.mark.asyncio
    async def test_owner_cannot_change_salary(self, client, employee_user, employee_headers):
        response = await client.put(
            f"{API}/users/{employee_user.id}",
            json={"basic_salary": "99999.00"},
            headers=employee_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_changes_salary(self, client, admin_headers, employee_user):
        response = await client.put(
            f"{API}/users/{employee_user.id}",
            json={"basic_salary": "45000.00"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["basic_salary"] == "45000.00"

    @pytest.mark.asyncio
    async def test_email_taken(self, client, admin_headers, employee_user, other_employee):
        response = await client.put(
            f"{API}/users/{employee_user.id}",
            json={"email": "Meera@example.com"},
            headers=admin_headers,
        )

        assert response.status_code == 409


class TestAccountLifecycle:

    @pytest.mark.asyncio
    async def test_deactivate_and_reactivate(self, client, admin_headers, employee_user):
        deactivated = await client.delete(f"{API}/users/{employee_user.id}", headers=admin_headers)
        assert deactivated.status_code == 200

        inactive = await client.get(f"{API}/users", params={"is_active": "false"}, headers=admin_headers)
        assert [u["id"] for u in inactive.json()["items"]] == [str(employee_user.id)]

        reactivated = await client.put(f"{API}/users/{employee_user.id}/activate", headers=admin_headers)
        assert reactivated.json()["is_active"] is True

    @pytest.mark.asyncio
    async def test_admin_cannot_deactivate_self(self, client, admin_user, admin_headers):
        response = await client.delete(f"{API}/users/{admin_user.id}", headers=admin_headers)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "BUSINESS_RULE_VIOLATION"

    @pytest.mark.asyncio
    async def test_promote_to_employee_assigns_code(self, client, admin_headers, employee_user):
        created = await client.post(
            f"{API}/auth/register",
            json={"name": "Second Admin", "email": "admin2@example.com", "password": "secret123", "role": "admin"},
            headers=admin_headers,
        )
        new_id = created.json()["user"]["id"]

        response = await client.put(
            f"{API}/users/{new_id}/role",
            json={"role": "employee"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["role"] == "employee"
        assert response.json()["employee_code"] == "EMP0002"

    @pytest.mark.asyncio
    async def test_active_employees_and_stats(self, client, admin_headers, employee_user, other_employee):
        await client.delete(f"{API}/users/{other_employee.id}", headers=admin_headers)

        employees = await client.get(f"{API}/users/employees", headers=admin_headers)
        stats = await client.get(f"{API}/users/stats", headers=admin_headers)

        assert [u["name"] for u in employees.json()] == ["Ravi Kumar"]
        data = stats.json()
        assert data["total_users"] == 3
        assert data["active_users"] == 2
        assert data["admins"] == 1
        assert data["employees"] == 2
        assert data["departments"] == [{"department": "Engineering", "count": 1}]
