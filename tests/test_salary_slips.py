"""
PayDesk - Salary Slip Tests

Creation, draft edits, the draft -> finalized -> sent lifecycle,
PDF generation and download.
"""

import uuid

import pytest

from paydesk.models.user import User
from paydesk.services.file_storage_service import FileStorageService
from paydesk.services.salary_slip_pdf_service import SalarySlipPDFService
from paydesk.services.salary_slip_service import SalarySlipService


API = "/api/v1"


def slip_payload(employee_id, **overrides) -> dict:
    payload = {
        "employee_id": str(employee_id),
        "month": 6,
        "year": 2024,
        "basic_salary": "50000.00",
        "working_days_total": 22,
        "working_days_worked": 22,
        "allowances": {"hra": "20000.00"},
        "deductions": {"tax": "5000.00"},
    }
    payload.update(overrides)
    return payload


async def create_slip(client, headers, employee_id, **overrides) -> dict:
    response = await client.post(
        f"{API}/salary-slips",
        json=slip_payload(employee_id, **overrides),
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateSlip:
    """Test cases for POST /salary-slips."""

    @pytest.mark.asyncio
    async def test_create_computes_net(self, client, admin_user, admin_headers, employee_user):
        slip = await create_slip(client, admin_headers, employee_user.id)

        assert slip["status"] == "draft"
        assert slip["period"] == "June 2024"
        assert slip["pro_rated_basic"] == "50000.00"
        assert slip["total_allowances"] == "20000.00"
        assert slip["total_deductions"] == "5000.00"
        assert slip["gross_salary"] == "70000.00"
        assert slip["net_salary"] == "65000.00"
        assert slip["net_salary_in_words"] == "Sixty Five Thousand Rupees Only"
        assert slip["generated_by"] == admin_user.name
        assert slip["employee"]["employee_code"] == "EMP0001"
        assert slip["pdf_generated"] is False

    @pytest.mark.asyncio
    async def test_create_pro_rated(self, client, admin_headers, employee_user):
        slip = await create_slip(
            client, admin_headers, employee_user.id,
            working_days_worked=20, allowances=None, deductions=None,
        )

        assert slip["pro_rated_basic"] == "45454.55"
        assert slip["net_salary"] == "45454.55"

    @pytest.mark.asyncio
    async def test_create_uses_employee_defaults(self, client, admin_headers, employee_user):
        """Basic salary comes from the account; working days are the month's weekdays."""
        response = await client.post(
            f"{API}/salary-slips",
            json={"employee_id": str(employee_user.id), "month": 6, "year": 2024},
            headers=admin_headers,
        )

        assert response.status_code == 201
        slip = response.json()
        assert slip["basic_salary"] == "40000.00"
        assert slip["working_days_total"] == 20
        assert slip["working_days_worked"] == 20
        assert slip["net_salary"] == "40000.00"

    @pytest.mark.asyncio
    async def test_duplicate_period(self, client, admin_headers, employee_user):
        await create_slip(client, admin_headers, employee_user.id)

        response = await client.post(
            f"{API}/salary-slips",
            json=slip_payload(employee_user.id, basic_salary="1.00"),
            headers=admin_headers,
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DUPLICATE_ENTRY"

    @pytest.mark.asyncio
    async def test_invalid_working_days(self, client, admin_headers, employee_user):
        response = await client.post(
            f"{API}/salary-slips",
            json=slip_payload(employee_user.id, working_days_worked=23),
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_WORKING_DAYS"

    @pytest.mark.asyncio
    async def test_unknown_component(self, client, admin_headers, employee_user):
        response = await client.post(
            f"{API}/salary-slips",
            json=slip_payload(employee_user.id, allowances={"bonus": "100"}),
            headers=admin_headers,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_year_before_first_payroll_year(self, client, admin_headers, employee_user):
        response = await client.post(
            f"{API}/salary-slips",
            json=slip_payload(employee_user.id, year=2019),
            headers=admin_headers,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_only_for_employees(self, client, admin_user, admin_headers):
        response = await client.post(
            f"{API}/salary-slips",
            json=slip_payload(admin_user.id),
            headers=admin_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "USER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_employee_cannot_create(self, client, employee_user, employee_headers):
        response = await client.post(
            f"{API}/salary-slips",
            json=slip_payload(employee_user.id),
            headers=employee_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_create_notifies_employee(self, client, admin_headers, employee_user, employee_headers):
        await create_slip(client, admin_headers, employee_user.id)

        response = await client.get(f"{API}/notifications", headers=employee_headers)

        assert [n["category"] for n in response.json()["items"]] == ["salary_generated"]


class TestDraftEdits:

    @pytest.mark.asyncio
    async def test_update_merges_components(self, client, admin_headers, employee_user):
        slip = await create_slip(client, admin_headers, employee_user.id)

        response = await client.put(
            f"{API}/salary-slips/{slip['id']}",
            json={"allowances": {"transport": "1600.00"}, "deductions": {"pf": "1800.00"}},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["allowances"]["hra"] == "20000.00"
        assert data["allowances"]["transport"] == "1600.00"
        assert data["total_deductions"] == "6800.00"
        assert data["net_salary"] == "64800.00"

    @pytest.mark.asyncio
    async def test_update_working_days_recomputes(self, client, admin_headers, employee_user):
        slip = await create_slip(client, admin_headers, employee_user.id)

        response = await client.put(
            f"{API}/salary-slips/{slip['id']}",
            json={"working_days_worked": 11},
            headers=admin_headers,
        )

        assert response.json()["pro_rated_basic"] == "25000.00"
        assert response.json()["net_salary"] == "40000.00"

    @pytest.mark.asyncio
    async def test_delete_draft(self, client, admin_headers, employee_user):
        slip = await create_slip(client, admin_headers, employee_user.id)

        response = await client.delete(f"{API}/salary-slips/{slip['id']}", headers=admin_headers)
        missing = await client.get(f"{API}/salary-slips/{slip['id']}", headers=admin_headers)

        assert response.status_code == 200
        assert missing.status_code == 404
        assert missing.json()["detail"]["code"] == "SALARY_SLIP_NOT_FOUND"


class TestLifecycle:
    """draft -> finalized -> sent, forward only."""

    @pytest.mark.asyncio
    async def test_finalize_twice_conflicts(self, client, admin_headers, employee_user):
        slip = await create_slip(client, admin_headers, employee_user.id)

        first = await client.post(f"{API}/salary-slips/{slip['id']}/finalize", headers=admin_headers)
        second = await client.post(f"{API}/salary-slips/{slip['id']}/finalize", headers=admin_headers)

        assert first.status_code == 200
        assert first.json()["status"] == "finalized"
        assert first.json()["finalized_at"] is not None
        assert second.status_code == 409
        assert second.json()["detail"]["code"] == "ALREADY_PROCESSED"

    @pytest.mark.asyncio
    async def test_finalized_is_read_only(self, client, admin_headers, employee_user):
        slip = await create_slip(client, admin_headers, employee_user.id)
        await client.post(f"{API}/salary-slips/{slip['id']}/finalize", headers=admin_headers)

        update = await client.put(
            f"{API}/salary-slips/{slip['id']}",
            json={"basic_salary": "1.00"},
            headers=admin_headers,
        )
        delete = await client.delete(f"{API}/salary-slips/{slip['id']}", headers=admin_headers)
        current = await client.get(f"{API}/salary-slips/{slip['id']}", headers=admin_headers)

        assert update.status_code == 409
        assert delete.status_code == 409
        assert current.json()["net_salary"] == "65000.00"

    @pytest.mark.asyncio
    async def test_send_requires_pdf(self, client, admin_headers, employee_user):
        slip = await create_slip(client, admin_headers, employee_user.id)
        await client.post(f"{API}/salary-slips/{slip['id']}/finalize", headers=admin_headers)

        response = await client.post(f"{API}/salary-slips/{slip['id']}/send-email", headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "CANNOT_MODIFY"

    @pytest.mark.asyncio
    async def test_send_requires_finalized(self, client, admin_headers, employee_user):
        slip = await create_slip(client, admin_headers, employee_user.id)
        await client.post(f"{API}/salary-slips/{slip['id']}/generate-pdf", headers=admin_headers)

        response = await client.post(f"{API}/salary-slips/{slip['id']}/send-email", headers=admin_headers)

        assert response.status_code == 409
        current = await client.get(f"{API}/salary-slips/{slip['id']}", headers=admin_headers)
        assert current.json()["status"] == "draft"

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, client, admin_headers, employee_user, employee_headers):
        slip = await create_slip(client, admin_headers, employee_user.id)
        slip_id = slip["id"]

        generated = await client.post(f"{API}/salary-slips/{slip_id}/generate-pdf", headers=admin_headers)
        assert generated.status_code == 200
        assert generated.json()["pdf_generated"] is True

        await client.post(f"{API}/salary-slips/{slip_id}/finalize", headers=admin_headers)

        sent = await client.post(f"{API}/salary-slips/{slip_id}/send-email", headers=admin_headers)
        assert sent.status_code == 200
        assert sent.json()["slip"]["status"] == "sent"
        assert sent.json()["slip"]["sent_at"] is not None
        assert sent.json()["email_delivered"] is True

        again = await client.post(f"{API}/salary-slips/{slip_id}/send-email", headers=admin_headers)
        assert again.status_code == 409

        download = await client.get(f"{API}/salary-slips/{slip_id}/download", headers=employee_headers)
        assert download.status_code == 200
        assert download.headers["content-type"] == "application/pdf"
        assert download.content.startswith(b"%PDF")
        assert 'filename="SalarySlip_EMP0001_June_2024.pdf"' in download.headers["content-disposition"]

        notifications = await client.get(f"{API}/notifications", headers=employee_headers)
        categories = {n["category"] for n in notifications.json()["items"]}
        assert categories == {"salary_generated", "salary_sent"}

    @pytest.mark.asyncio
    async def test_download_before_generation(self, client, admin_headers, employee_user):
        slip = await create_slip(client, admin_headers, employee_user.id)

        response = await client.get(f"{API}/salary-slips/{slip['id']}/download", headers=admin_headers)

        assert response.status_code == 404


class TestAccess:

    @pytest.mark.asyncio
    async def test_employee_sees_only_own_slips(
        self, client, admin_headers, employee_user, employee_headers, other_employee, other_employee_headers
    ):
        mine = await create_slip(client, admin_headers, employee_user.id)
        await create_slip(client, admin_headers, other_employee.id)

        own_list = await client.get(f"{API}/salary-slips", headers=employee_headers)
        admin_list = await client.get(f"{API}/salary-slips", headers=admin_headers)
        foreign = await client.get(f"{API}/salary-slips/{mine['id']}", headers=other_employee_headers)

        assert [s["id"] for s in own_list.json()["items"]] == [mine["id"]]
        assert admin_list.json()["pagination"]["total"] == 2
        assert foreign.status_code == 403

    @pytest.mark.asyncio
    async def test_list_newest_period_first(self, client, admin_headers, employee_user):
        await create_slip(client, admin_headers, employee_user.id, month=1, year=2024)
        await create_slip(client, admin_headers, employee_user.id, month=11, year=2023)
        await create_slip(client, admin_headers, employee_user.id, month=3, year=2024)

        response = await client.get(
            f"{API}/salary-slips/employee/{employee_user.id}",
            headers=admin_headers,
        )

        assert [s["period"] for s in response.json()] == ["March 2024", "January 2024", "November 2023"]

    @pytest.mark.asyncio
    async def test_stats(self, client, admin_headers, employee_user):
        first = await create_slip(client, admin_headers, employee_user.id, month=1)
        await create_slip(client, admin_headers, employee_user.id, month=2)
        await client.post(f"{API}/salary-slips/{first['id']}/finalize", headers=admin_headers)

        response = await client.get(f"{API}/salary-slips/stats", headers=admin_headers)

        data = response.json()
        assert data["total_slips"] == 2
        assert data["by_status"] == {"draft": 1, "finalized": 1, "sent": 0}
        assert data["yearly"][0]["year"] == 2024
        assert data["yearly"][0]["count"] == 2


class RecordingPDFService(SalarySlipPDFService):
    """Keeps every document it renders."""

    def __init__(self):
        super().__init__()
        self.documents = []

    def generate_pdf(self, document):
        self.documents.append(document)
        return super().generate_pdf(document)


class TestSlipDocument:

    @pytest.mark.asyncio
    async def test_footer_names_the_slip_author(self, client, db_session, settings, admin_headers, employee_user):
        """Regenerating the PDF keeps the admin who created the slip in the footer."""
        slip = await create_slip(client, admin_headers, employee_user.id)
        registered = await client.post(
            f"{API}/auth/register",
            json={"name": "Dev Admin", "email": "dev.admin@example.com", "password": "secret123", "role": "admin"},
            headers=admin_headers,
        )
        other_admin = await db_session.get(User, uuid.UUID(registered.json()["user"]["id"]))

        recorder = RecordingPDFService()
        service = SalarySlipService(db_session, storage=FileStorageService(settings), pdf_service=recorder)
        await service.generate_pdf(other_admin, uuid.UUID(slip["id"]))

        assert recorder.documents[0].generated_by_name == "Asha Admin"
