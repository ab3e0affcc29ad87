"""Route-level tests through the FastAPI TestClient."""

from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.config.database import get_db
from app.config.settings import get_settings
from app.main import create_app
from app.models import MemberRole
from tests.conftest import TEST_DATE, make_budget, make_company, make_member

NOON = "12:00 PM - 01:00 PM"


@pytest.fixture
def client(session_factory, settings):
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    return TestClient(app)


def headers(actor_id=None, role="customer"):
    return {"X-Actor-Id": str(actor_id or uuid4()), "X-Actor-Role": role}


def appointment_payload(**overrides):
    payload = {
        "trip_id": str(uuid4()),
        "trip_title": "Lisbon Long Weekend",
        "first_name": "Sam",
        "last_name": "Rivera",
        "email": "Sam@Example.com",
        "phone": "+15550100",
        "preferred_date": TEST_DATE.isoformat(),
        "time_slot": NOON,
    }
    payload.update(overrides)
    return payload


class TestHealth:
    def test_root_and_health(self, client):
        assert client.get("/").json()["status"] == "running"
        assert client.get("/health/").json()["status"] == "healthy"

    def test_detailed_health_counts_queues(self, client):
        body = client.get("/health/detailed").json()
        assert body["database"] == "reachable"
        assert body["pending_approvals"] == 0

    def test_correlation_id_is_echoed(self, client):
        response = client.get("/health/", headers={"X-Correlation-ID": "trace-42"})
        assert response.headers["X-Correlation-ID"] == "trace-42"


class TestIdentity:
    def test_missing_actor_header(self, client):
        response = client.get("/api/v1/appointments")
        assert response.status_code == 422

    def test_malformed_actor_id(self, client):
        response = client.get("/api/v1/appointments", headers={"X-Actor-Id": "not-a-uuid"})
        assert response.status_code == 401

    def test_customer_cannot_confirm(self, client):
        customer = uuid4()
        created = client.post("/api/v1/appointments", json=appointment_payload(), headers=headers(customer))
        appointment_id = created.json()["appointment"]["id"]

        response = client.post(f"/api/v1/appointments/{appointment_id}/confirm", headers=headers(customer))
        assert response.status_code == 403


class TestAppointmentRoutes:
    def test_available_slots(self, client):
        response = client.get("/api/v1/appointments/available-slots", params={"date": TEST_DATE.isoformat()})
        assert response.status_code == 200
        assert len(response.json()["slots"]) == 6

    def test_create_and_conflict(self, client):
        first = client.post("/api/v1/appointments", json=appointment_payload(), headers=headers())
        assert first.status_code == 201
        assert first.json()["appointment"]["customer_email"] == "sam@example.com"

        second = client.post("/api/v1/appointments", json=appointment_payload(), headers=headers())
        assert second.status_code == 409
        body = second.json()
        assert body["success"] is False
        assert body["error"]["code"] == "slot_unavailable"
        assert NOON not in body["error"]["available_slots"]

    def test_unknown_slot_is_422(self, client):
        response = client.post(
            "/api/v1/appointments",
            json=appointment_payload(time_slot="11:00 PM - 12:00 AM"),
            headers=headers(),
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "validation_error"

    def test_other_customer_cannot_read(self, client):
        created = client.post("/api/v1/appointments", json=appointment_payload(), headers=headers())
        appointment_id = created.json()["appointment"]["id"]

        response = client.get(f"/api/v1/appointments/{appointment_id}", headers=headers())
        assert response.status_code == 403

    def test_unknown_appointment_is_404(self, client):
        response = client.get(f"/api/v1/appointments/{uuid4()}", headers=headers(role="agent"))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    def test_full_consultation_to_paid_booking(self, client):
        customer = uuid4()
        agent = headers(role="agent")
        created = client.post("/api/v1/appointments", json=appointment_payload(), headers=headers(customer))
        appointment_id = created.json()["appointment"]["id"]

        assert client.post(f"/api/v1/appointments/{appointment_id}/confirm", headers=agent).status_code == 200
        assert client.post(f"/api/v1/appointments/{appointment_id}/start", headers=agent).status_code == 200
        completed = client.post(
            f"/api/v1/appointments/{appointment_id}/complete",
            json={"notes": "Keen", "interest_level": "high", "quoted_price": "1200"},
            headers=agent,
        )
        assert completed.status_code == 200
        assert completed.json()["status"] == "completed"

        converted = client.post(f"/api/v1/appointments/{appointment_id}/convert", json={}, headers=agent)
        assert converted.status_code == 201
        booking = converted.json()["booking"]
        assert Decimal(booking["final_amount"]) == Decimal("1200")

        duplicate = client.post(f"/api/v1/appointments/{appointment_id}/convert", json={}, headers=agent)
        assert duplicate.status_code == 409
        assert duplicate.json()["error"]["booking_id"] == booking["id"]

        for index in (1, 2):
            paid = client.post(
                f"/api/v1/bookings/{booking['id']}/payments",
                json={"amount": "600", "method": "card", "transaction_id": f"api-txn-{index}"},
                headers=headers(customer),
            )
            assert paid.status_code == 200

        final = client.get(f"/api/v1/bookings/{booking['id']}", headers=headers(customer)).json()
        assert final["status"] == "confirmed"
        assert final["payment_status"] == "completed"

        overpay = client.post(
            f"/api/v1/bookings/{booking['id']}/payments",
            json={"amount": "1", "method": "card", "transaction_id": "api-txn-3"},
            headers=headers(customer),
        )
        assert overpay.status_code == 409
        assert overpay.json()["error"]["code"] == "payment_overpay"

    def test_cancel_completed_appointment_is_409(self, client):
        agent = headers(role="agent")
        created = client.post("/api/v1/appointments", json=appointment_payload(), headers=headers())
        appointment_id = created.json()["appointment"]["id"]
        client.post(f"/api/v1/appointments/{appointment_id}/confirm", headers=agent)
        client.post(f"/api/v1/appointments/{appointment_id}/complete", json={"notes": "Done"}, headers=agent)

        response = client.post(f"/api/v1/appointments/{appointment_id}/cancel", json={}, headers=agent)
        assert response.status_code == 409
        assert response.json()["error"]["current"] == "completed"


class TestBookingRoutes:
    def test_direct_booking_cancel_and_installments(self, client):
        customer = uuid4()
        created = client.post(
            "/api/v1/bookings",
            json={
                "first_name": "Sam",
                "last_name": "Rivera",
                "email": "sam@example.com",
                "phone": "+15550100",
                "price_per_person": "450",
                "traveler_count": 2,
                "add_ons": [{"name": "Insurance", "price": "25", "quantity": 2}],
                "payment_method": "card",
            },
            headers=headers(customer),
        )
        assert created.status_code == 201
        booking = created.json()["booking"]
        assert Decimal(booking["final_amount"]) == Decimal("950")

        schedule = client.put(
            f"/api/v1/bookings/{booking['id']}/installments",
            json={"items": [
                {"due_date": "2024-07-01", "amount": "500"},
                {"due_date": "2024-08-01", "amount": "450"},
            ]},
            headers=headers(role="agent"),
        )
        assert schedule.status_code == 200
        assert len(schedule.json()["booking"]["installments"]) == 2

        cancelled = client.post(
            f"/api/v1/bookings/{booking['id']}/cancel",
            json={"reason": "Dates clash"},
            headers=headers(customer),
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["booking"]["status"] == "cancelled"

    def test_customers_list_only_their_own_bookings(self, client):
        customer = uuid4()
        payload = {
            "first_name": "Sam",
            "last_name": "Rivera",
            "email": "sam@example.com",
            "phone": "+15550100",
            "price_per_person": "300",
        }
        mine = client.post("/api/v1/bookings", json=payload, headers=headers(customer)).json()["booking"]
        client.post("/api/v1/bookings", json=payload, headers=headers())

        own = client.get(
            "/api/v1/bookings",
            params={"customer_id": str(uuid4())},
            headers=headers(customer),
        )
        assert own.status_code == 200
        assert own.json()["total"] == 1
        assert own.json()["bookings"][0]["id"] == mine["id"]

        everyone = client.get("/api/v1/bookings", params={"status": "draft"}, headers=headers(role="agent"))
        assert everyone.json()["total"] == 2
        assert everyone.json()["page"] == {"skip": 0, "limit": 20, "total_pages": 1}


class TestCorporateRoutes:
    def test_budget_exceeded_is_422(self, client, session_factory):
        db = session_factory()
        company = make_company(db)
        member = make_member(db, company, approval_limit=Decimal("100000"))
        make_budget(db, company, annual_budget=Decimal("1000"))
        company_id, member_id = company.id, member.id
        db.close()

        response = client.post(
            "/api/v1/corporate/bookings",
            json={
                "company_id": str(company_id),
                "department": "Sales",
                "booking_type": "flight",
                "pricing": {"unit_price": "5000"},
                "travelers": [{"first_name": "Jordan", "last_name": "Lee", "is_primary": True}],
            },
            headers=headers(member_id),
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "budget_exceeded"
        assert response.json()["error"]["remaining"] == "1000.00"

    def test_pending_booking_approval_flow(self, client, session_factory):
        db = session_factory()
        company = make_company(db)
        requester = make_member(db, company, approval_limit=Decimal("100"))
        approver = make_member(db, company, approval_limit=Decimal("50000"), can_approve=True)
        make_budget(db, company, annual_budget=Decimal("50000"))
        company_id, requester_id, approver_id = company.id, requester.id, approver.id
        db.close()

        created = client.post(
            "/api/v1/corporate/bookings",
            json={
                "company_id": str(company_id),
                "department": "Sales",
                "booking_type": "hotel",
                "pricing": {"unit_price": "200", "nights": 3},
                "travelers": [{"first_name": "Jordan", "last_name": "Lee"}],
            },
            headers=headers(requester_id),
        )
        assert created.status_code == 201
        body = created.json()
        assert body["requires_approval"] is True
        booking_id = body["booking"]["id"]

        pending = client.get(
            "/api/v1/corporate/approvals/pending",
            params={"company_id": str(company_id)},
            headers=headers(approver_id),
        )
        assert [b["id"] for b in pending.json()] == [booking_id]

        blocked = client.post(
            f"/api/v1/corporate/bookings/{booking_id}/decision",
            json={"decision": "approve"},
            headers=headers(requester_id),
        )
        assert blocked.status_code == 403

        approved = client.post(
            f"/api/v1/corporate/bookings/{booking_id}/decision",
            json={"decision": "approve", "notes": "Fine"},
            headers=headers(approver_id),
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"

        budget = client.get(
            "/api/v1/corporate/budgets/Sales",
            params={"company_id": str(company_id)},
            headers=headers(requester_id),
        )
        assert budget.status_code == 200
        assert budget.json()["constrained"] is True
        assert Decimal(budget.json()["spent"]) == Decimal(body["booking"]["final_amount"])

    def test_company_booking_list_is_scoped_by_role(self, client, session_factory):
        db = session_factory()
        company = make_company(db)
        booker = make_member(db, company, approval_limit=Decimal("10000"))
        colleague = make_member(db, company, approval_limit=Decimal("10000"))
        admin = make_member(db, company, role=MemberRole.ADMIN.value)
        outsider = make_member(db, make_company(db, name="Other Co"), role=MemberRole.ADMIN.value)
        company_id = company.id
        booker_id, colleague_id, admin_id, outsider_id = booker.id, colleague.id, admin.id, outsider.id
        db.close()

        for member_id, booking_type in ((booker_id, "flight"), (colleague_id, "hotel")):
            created = client.post(
                "/api/v1/corporate/bookings",
                json={
                    "company_id": str(company_id),
                    "department": "Sales",
                    "booking_type": booking_type,
                    "pricing": {"unit_price": "400"},
                    "travelers": [{"first_name": "Jordan", "last_name": "Lee"}],
                },
                headers=headers(member_id),
            )
            assert created.status_code == 201

        def listing(actor_headers, **params):
            return client.get(
                "/api/v1/corporate/bookings",
                params={"company_id": str(company_id), **params},
                headers=actor_headers,
            )

        own = listing(headers(booker_id))
        assert own.status_code == 200
        assert own.json()["total"] == 1
        assert own.json()["bookings"][0]["booked_by_id"] == str(booker_id)

        assert listing(headers(admin_id)).json()["total"] == 2
        hotels = listing(headers(role="agent"), type="hotel")
        assert [b["corporate_type"] for b in hotels.json()["bookings"]] == ["hotel"]
        assert listing(headers(outsider_id)).status_code == 403
        assert listing(headers(role="agent"), type="yacht").status_code == 422
