"""Test the registration HTTP endpoints end to end"""

import json
import logging
import uuid

import pytest
from fastapi.testclient import TestClient
from tests.config import OTHER_PARTICIPANT, OTHER_VENDOR, PARTICIPANT, VENDOR

from event_registration.main import app

logger = logging.getLogger(__name__)

FIELDS = [
    {"id": "f1", "type": "text", "label": "Full name", "required": True, "order": 0},
    {
        "id": "photo",
        "type": "file",
        "label": "Photo",
        "order": 1,
        "validation": {"allowed_mime_types": ["image/*"]},
    },
]


class TestSubmitEndpoint:
    """Test POST /events/{event_id}/registrations"""

    def test_submit_json(self, authenticated_client, configure, make_event, email_client):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS)

        response = client.post(
            f"/events/{event.id}/registrations", json={"answers": {"f1": "Jane Doe"}}
        )

        logger.info(f"Response content: {response.text}")
        assert response.status_code == 201
        data = response.json()
        assert data["payment"] is None
        registration = data["registration"]
        assert registration["status"] == "submitted"
        assert registration["answers"] == {"f1": "Jane Doe"}
        assert registration["confirmation_number"].startswith("REG-")
        assert "field_snapshot" not in registration

        # Participant confirmation and vendor notice
        recipients = {mail["to"] for mail in email_client.sent}
        assert recipients == {PARTICIPANT.email, VENDOR.email}
        confirmation = next(m for m in email_client.sent if m["to"] == PARTICIPANT.email)
        assert registration["confirmation_number"] in confirmation["text"]
        assert confirmation["tag"] == "registration-confirmation"

    def test_draft_sends_no_email(
        self, authenticated_client, configure, make_event, email_client
    ):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS)

        response = client.post(
            f"/events/{event.id}/registrations", json={"answers": {}, "as_draft": True}
        )

        assert response.status_code == 201
        assert response.json()["registration"]["status"] == "draft"
        assert email_client.sent == []

    @pytest.mark.parametrize("flag, expected", [("false", "submitted"), ("true", "draft")])
    def test_draft_flag_given_as_string(
        self, authenticated_client, configure, make_event, flag, expected
    ):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS)

        response = client.post(
            f"/events/{event.id}/registrations",
            json={"answers": {"f1": "Jane"}, "as_draft": flag},
        )

        assert response.status_code == 201
        registration = response.json()["registration"]
        assert registration["status"] == expected
        assert (registration["confirmation_number"] is not None) == (expected == "submitted")

    def test_unreadable_draft_flag(self, authenticated_client, configure, make_event):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS)

        response = client.post(
            f"/events/{event.id}/registrations",
            json={"answers": {"f1": "Jane"}, "as_draft": "sometimes"},
        )

        assert response.status_code == 422

    def test_notification_flags_are_respected(
        self, authenticated_client, configure, make_event, email_client
    ):
        client, _ = authenticated_client
        event = make_event()
        configure(
            event,
            FIELDS,
            email_notifications={"to_vendor": False, "to_participant": True},
        )

        client.post(f"/events/{event.id}/registrations", json={"answers": {"f1": "Jane"}})

        assert [mail["to"] for mail in email_client.sent] == [PARTICIPANT.email]

    def test_submit_multipart_with_file(
        self, authenticated_client, configure, make_event, storage_client
    ):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS)

        response = client.post(
            f"/events/{event.id}/registrations",
            data={"answers": json.dumps({"f1": "Jane Doe"})},
            files={"photo": ("me.png", b"\x89PNG fake image", "image/png")},
        )

        assert response.status_code == 201
        files = response.json()["registration"]["files"]
        assert files["photo"]["original_name"] == "me.png"
        assert files["photo"]["size"] == len(b"\x89PNG fake image")
        assert len(storage_client.uploads) == 1

    def test_priced_event_returns_client_secret(
        self, authenticated_client, configure, make_event
    ):
        client, _ = authenticated_client
        event = make_event(price=15.5)
        configure(event, FIELDS)

        response = client.post(
            f"/events/{event.id}/registrations", json={"answers": {"f1": "Jane"}}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["registration"]["payment_status"] == "pending"
        payment = data["payment"]
        assert payment["client_secret"] == f"{payment['payment_intent_id']}_secret_test"
        assert payment["amount"] == 15.5
        assert payment["currency"] == "usd"

    def test_validation_errors_are_listed(self, authenticated_client, configure, make_event):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS)

        response = client.post(
            f"/events/{event.id}/registrations", json={"answers": {"nickname": "JD"}}
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "validation_failed"
        assert data["errors"] == {"nickname": "Unknown field", "f1": "Full name is required"}

    def test_disabled_registration(self, authenticated_client, configure, make_event):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS, enabled=False)

        response = client.post(
            f"/events/{event.id}/registrations", json={"answers": {"f1": "Jane"}}
        )

        assert response.status_code == 403
        assert response.json()["error"] == "registration_disabled"

    def test_full_event(self, authenticated_client, configure, make_event):
        client, act_as = authenticated_client
        event = make_event()
        configure(event, FIELDS, max_registrations=1)
        client.post(f"/events/{event.id}/registrations", json={"answers": {"f1": "Jane"}})

        act_as(OTHER_PARTICIPANT)
        response = client.post(
            f"/events/{event.id}/registrations", json={"answers": {"f1": "John"}}
        )

        assert response.status_code == 403
        assert response.json()["error"] == "registration_closed"

    def test_malformed_body(self, authenticated_client, configure, make_event):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS)

        response = client.post(
            f"/events/{event.id}/registrations",
            content=b"[1, 2",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400

    def test_unknown_event(self, authenticated_client):
        client, _ = authenticated_client

        response = client.post(
            "/events/00000000-0000-0000-0000-000000000000/registrations",
            json={"answers": {}},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestRegistrationEndpoints:
    def _submit(self, client, event, answers=None):
        response = client.post(
            f"/events/{event.id}/registrations", json={"answers": answers or {"f1": "Jane"}}
        )
        assert response.status_code == 201
        return response.json()

    def test_get_registration(self, authenticated_client, configure, make_event):
        client, act_as = authenticated_client
        event = make_event()
        configure(event, FIELDS)
        registration_id = self._submit(client, event)["registration"]["id"]

        assert client.get(f"/registrations/{registration_id}").status_code == 200

        act_as(VENDOR)
        assert client.get(f"/registrations/{registration_id}").status_code == 200

        act_as(OTHER_PARTICIPANT)
        response = client.get(f"/registrations/{registration_id}")
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_get_registration_lists_actions(self, authenticated_client, configure, make_event):
        client, act_as = authenticated_client
        event = make_event()
        configure(event, FIELDS)
        registration_id = self._submit(client, event)["registration"]["id"]

        assert client.get(f"/registrations/{registration_id}").json()["actions"] == ["withdraw"]

        act_as(VENDOR)
        actions = client.get(f"/registrations/{registration_id}").json()["actions"]
        assert set(actions) == {"start_review", "approve", "reject", "withdraw"}

        client.post(f"/registrations/{registration_id}/review", json={"decision": "approved"})
        assert client.get(f"/registrations/{registration_id}").json()["actions"] == []

    def test_update_registration(self, authenticated_client, configure, make_event):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS)
        registration_id = self._submit(client, event)["registration"]["id"]

        response = client.put(
            f"/registrations/{registration_id}", json={"answers": {"f1": "Jane Q. Doe"}}
        )

        assert response.status_code == 200
        assert response.json()["answers"] == {"f1": "Jane Q. Doe"}

    def test_review_flow(self, authenticated_client, configure, make_event, email_client):
        client, act_as = authenticated_client
        event = make_event()
        configure(event, FIELDS, requires_approval=True)
        registration = self._submit(client, event)["registration"]
        assert registration["status"] == "under_review"
        email_client.sent.clear()

        # Participants cannot decide on their own registration
        response = client.post(
            f"/registrations/{registration['id']}/review", json={"decision": "approved"}
        )
        assert response.status_code == 403

        act_as(VENDOR)
        response = client.post(
            f"/registrations/{registration['id']}/review",
            json={"decision": "rejected", "remarks": "The class is full of returning students"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "rejected"
        assert data["review_remarks"] == "The class is full of returning students"
        assert data["reviewed_by"] == VENDOR.user_id

        assert len(email_client.sent) == 1
        decision_mail = email_client.sent[0]
        assert decision_mail["to"] == PARTICIPANT.email
        assert decision_mail["tag"] == "registration-review"
        assert "The class is full of returning students" in decision_mail["text"]

        # Rejection is final
        response = client.post(
            f"/registrations/{registration['id']}/review", json={"decision": "approved"}
        )
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    def test_start_review(self, authenticated_client, configure, make_event):
        client, act_as = authenticated_client
        event = make_event()
        configure(event, FIELDS)
        registration_id = self._submit(client, event)["registration"]["id"]

        act_as(VENDOR)
        response = client.post(f"/registrations/{registration_id}/start-review")

        assert response.status_code == 200
        assert response.json()["status"] == "under_review"

    def test_approval_before_payment(self, authenticated_client, configure, make_event):
        client, act_as = authenticated_client
        event = make_event(price=20.0)
        configure(event, FIELDS, requires_approval=True)
        registration_id = self._submit(client, event)["registration"]["id"]

        act_as(VENDOR)
        response = client.post(
            f"/registrations/{registration_id}/review", json={"decision": "approved"}
        )

        assert response.status_code == 402
        assert response.json()["error"] == "payment_required"

    def test_withdraw(self, authenticated_client, configure, make_event):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS)
        registration_id = self._submit(client, event)["registration"]["id"]

        response = client.post(
            f"/registrations/{registration_id}/withdraw", json={"reason": "Schedule conflict"}
        )
        assert response.status_code == 204

        data = client.get(f"/registrations/{registration_id}").json()
        assert data["status"] == "withdrawn"
        assert data["withdrawal_reason"] == "Schedule conflict"

        response = client.post(f"/registrations/{registration_id}/withdraw")
        assert response.status_code == 409

    def test_confirm_and_retry_payment(
        self, authenticated_client, configure, make_event, payment_client, payment_service
    ):
        client, _ = authenticated_client
        event = make_event(price=30.0)
        configure(event, FIELDS)
        data = self._submit(client, event)
        registration_id = data["registration"]["id"]
        first_intent = data["payment"]["payment_intent_id"]

        response = client.post(
            f"/registrations/{registration_id}/confirm-payment",
            json={"payment_intent_id": first_intent},
        )
        assert response.status_code == 409
        assert response.json()["error"] == "payment_not_completed"

        payment_service.mark_payment_failed(uuid.UUID(registration_id), first_intent)
        response = client.post(f"/registrations/{registration_id}/retry-payment")
        assert response.status_code == 200
        second_intent = response.json()["payment"]["payment_intent_id"]
        assert second_intent != first_intent

        payment_client.settle(second_intent)
        response = client.post(
            f"/registrations/{registration_id}/confirm-payment",
            json={"payment_intent_id": second_intent},
        )
        assert response.status_code == 200
        assert response.json()["payment_status"] == "paid"
        assert response.json()["status"] == "approved"

    def test_file_download_redirects(self, authenticated_client, configure, make_event):
        client, act_as = authenticated_client
        event = make_event()
        configure(event, FIELDS)
        response = client.post(
            f"/events/{event.id}/registrations",
            data={"answers": json.dumps({"f1": "Jane"})},
            files={"photo": ("me.png", b"png", "image/png")},
        )
        registration = response.json()["registration"]
        file_id = registration["files"]["photo"]["file_id"]

        act_as(VENDOR)
        response = client.get(
            f"/registrations/{registration['id']}/files/{file_id}", follow_redirects=False
        )

        assert response.status_code == 307
        assert response.headers["location"] == f"https://files.example.test/{file_id}/me.png"

        act_as(OTHER_VENDOR)
        response = client.get(
            f"/registrations/{registration['id']}/files/{file_id}", follow_redirects=False
        )
        assert response.status_code == 403


class TestListEndpoint:
    """Test GET /registrations"""

    def test_vendor_listing_with_stats(self, authenticated_client, configure, make_event):
        client, act_as = authenticated_client
        event = make_event()
        configure(event, FIELDS)
        for actor in (PARTICIPANT, OTHER_PARTICIPANT):
            act_as(actor)
            client.post(f"/events/{event.id}/registrations", json={"answers": {"f1": actor.name}})

        act_as(VENDOR)
        response = client.get(
            "/registrations",
            params={"event_id": str(event.id), "search": "john roe", "page_size": 10},
        )

        assert response.status_code == 200
        data = response.json()
        assert [r["participant_name"] for r in data["registrations"]] == ["John Roe"]
        assert data["pagination"] == {
            "current_page": 1,
            "total_pages": 1,
            "total": 1,
            "has_next_page": False,
            "has_prev_page": False,
        }
        assert data["stats"]["by_status"]["submitted"] == 2

    def test_status_filter(self, authenticated_client, configure, make_event):
        client, act_as = authenticated_client
        event = make_event()
        configure(event, FIELDS)
        client.post(f"/events/{event.id}/registrations", json={"answers": {"f1": "Jane"}})

        act_as(VENDOR)
        response = client.get(
            "/registrations",
            params=[("event_id", str(event.id)), ("status", "approved"), ("status", "rejected")],
        )

        assert response.status_code == 200
        assert response.json()["registrations"] == []

    def test_participant_listing(self, authenticated_client, configure, make_event):
        client, _ = authenticated_client
        event = make_event()
        configure(event, FIELDS)
        client.post(f"/events/{event.id}/registrations", json={"answers": {"f1": "Jane"}})

        own = client.get("/registrations")
        other = client.get("/registrations", params={"participant_id": OTHER_PARTICIPANT.user_id})

        assert own.status_code == 200
        assert own.json()["pagination"]["total"] == 1
        assert other.status_code == 403

    def test_vendor_cannot_list_foreign_event(self, authenticated_client, make_event):
        client, act_as = authenticated_client
        event = make_event()

        act_as(OTHER_VENDOR)
        response = client.get("/registrations", params={"event_id": str(event.id)})

        assert response.status_code == 403


@pytest.mark.parametrize(
    "path", ["/registrations", "/registrations/00000000-0000-0000-0000-000000000000"]
)
def test_requires_authentication(path):
    response = TestClient(app).get(path)

    assert response.status_code == 401
