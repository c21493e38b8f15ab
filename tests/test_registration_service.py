"""Tests for the submission engine"""

import re
from datetime import datetime, timedelta, timezone

import pytest
from tests.config import ADMIN, OTHER_PARTICIPANT, OTHER_VENDOR, PARTICIPANT, VENDOR

from event_registration.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PaymentProviderError,
    RegistrationClosed,
    RegistrationDisabled,
    StorageError,
    ValidationFailed,
)
from event_registration.models.files import FileUpload
from event_registration.models.registration import PaymentStatus, RegistrationStatus

FORM = [
    {"id": "f1", "type": "text", "label": "Full name", "required": True, "order": 0},
    {"id": "f2", "type": "email", "label": "Email", "required": True, "order": 1},
    {"id": "bringing_guest", "type": "checkbox", "label": "Bringing a guest", "order": 2},
    {
        "id": "guest_name",
        "type": "text",
        "label": "Guest name",
        "required": True,
        "order": 3,
        "conditional": {"depends_on_field_id": "bringing_guest", "value": True},
    },
]

PHOTO_FIELD = {
    "id": "photo",
    "type": "file",
    "label": "Photo",
    "required": True,
    "order": 4,
    "validation": {"max_file_size": 1_000_000, "allowed_mime_types": ["image/*"]},
}


def _photo(name="me.png", size=2048):
    return FileUpload(filename=name, content_type="image/png", size=size, data=b"\x89PNG" * 4)


class TestSubmit:
    """Test RegistrationService.submit"""

    @pytest.mark.asyncio
    async def test_scenario_a_free_event_stays_submitted(
        self, registration_service, configure, make_event
    ):
        event = make_event()
        configure(event, [FORM[0]], requires_approval=False)

        result = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        registration = result.registration
        assert registration.status == RegistrationStatus.SUBMITTED
        assert registration.payment_required is False
        assert registration.payment_status == PaymentStatus.NONE
        assert result.payment is None
        assert registration.answers == {"f1": "Jane"}
        assert registration.participant_id == PARTICIPANT.user_id
        assert registration.participant_email == PARTICIPANT.email
        assert registration.submitted_at is not None
        assert re.fullmatch(r"REG-\d{8}-[A-Z0-9]{6}", registration.confirmation_number)
        assert [f["id"] for f in registration.field_snapshot] == ["f1"]

    @pytest.mark.asyncio
    async def test_requires_approval_enters_review(
        self, registration_service, configure, make_event
    ):
        event = make_event()
        configure(event, [FORM[0]], requires_approval=True)

        result = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        assert result.registration.status == RegistrationStatus.UNDER_REVIEW

    @pytest.mark.asyncio
    async def test_priced_event_requests_payment_intent(
        self, registration_service, configure, make_event, payment_client
    ):
        event = make_event(price=25.0)
        configure(event, [FORM[0]])

        result = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        registration = result.registration
        assert registration.payment_required is True
        assert registration.payment_status == PaymentStatus.PENDING
        assert registration.payment_amount == 25.0
        assert registration.payment_intent_id == result.payment.id
        assert result.client_secret == f"{result.payment.id}_secret_test"
        assert result.payment.amount == 2500
        assert payment_client.created[0]["metadata"]["registration_id"] == str(registration.id)

    @pytest.mark.asyncio
    async def test_all_failures_are_reported(
        self, registration_service, configure, make_event
    ):
        event = make_event()
        configure(event, FORM)

        with pytest.raises(ValidationFailed) as exc_info:
            await registration_service.submit(
                PARTICIPANT, event.id, {"f2": "not-an-email", "bringing_guest": True}
            )

        assert exc_info.value.errors == {
            "f1": "Full name is required",
            "f2": "Please enter a valid email address",
            "guest_name": "Guest name is required",
        }

    @pytest.mark.asyncio
    async def test_hidden_required_field_may_be_empty(
        self, registration_service, configure, make_event
    ):
        event = make_event()
        configure(event, FORM)

        result = await registration_service.submit(
            PARTICIPANT,
            event.id,
            {"f1": "Jane", "f2": "jane@example.com", "bringing_guest": False, "guest_name": ""},
        )

        assert result.registration.status == RegistrationStatus.SUBMITTED
        assert "guest_name" not in result.registration.answers
        assert result.registration.answers["bringing_guest"] is False

    @pytest.mark.asyncio
    async def test_disabled_config_rejects_submissions(
        self, registration_service, config_service, configure, make_event
    ):
        event = make_event()
        configure(event, [FORM[0]])
        config_service.disable(VENDOR, event.id)

        with pytest.raises(RegistrationDisabled):
            await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})
        with pytest.raises(RegistrationDisabled):
            await registration_service.submit(PARTICIPANT, event.id, {}, as_draft=True)

    @pytest.mark.asyncio
    async def test_unconfigured_event(self, registration_service, make_event):
        event = make_event()
        with pytest.raises(NotFound):
            await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

    @pytest.mark.asyncio
    async def test_deadline_closes_registration(
        self, registration_service, configure, make_event
    ):
        event = make_event()
        configure(
            event,
            [FORM[0]],
            registration_deadline=datetime.now(timezone.utc) - timedelta(hours=1),
        )

        with pytest.raises(RegistrationClosed):
            await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        # Drafts can still be saved
        draft = await registration_service.submit(
            PARTICIPANT, event.id, {"f1": "Jane"}, as_draft=True
        )
        assert draft.registration.status == RegistrationStatus.DRAFT

    @pytest.mark.asyncio
    async def test_capacity_closes_registration(
        self, registration_service, configure, make_event
    ):
        event = make_event()
        configure(event, [FORM[0]], max_registrations=1)
        await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        with pytest.raises(RegistrationClosed):
            await registration_service.submit(OTHER_PARTICIPANT, event.id, {"f1": "John"})

    @pytest.mark.asyncio
    async def test_saving_a_draft_twice_updates_the_same_registration(
        self, registration_service, directory, configure, make_event
    ):
        event = make_event()
        configure(event, FORM)

        first = await registration_service.submit(
            PARTICIPANT, event.id, {"f1": "Ja"}, as_draft=True
        )
        second = await registration_service.submit(
            PARTICIPANT, event.id, {"f1": "Jane"}, as_draft=True
        )

        assert first.registration.id == second.registration.id
        assert second.registration.status == RegistrationStatus.DRAFT
        assert second.registration.answers == {"f1": "Jane"}
        assert second.registration.confirmation_number is None
        page = directory.list_for_event(VENDOR, event.id)
        assert page.pagination.total == 1

    @pytest.mark.asyncio
    async def test_drafts_are_still_type_checked(
        self, registration_service, configure, make_event
    ):
        event = make_event()
        configure(event, FORM)

        with pytest.raises(ValidationFailed) as exc_info:
            await registration_service.submit(
                PARTICIPANT, event.id, {"f2": "nope"}, as_draft=True
            )

        assert list(exc_info.value.errors) == ["f2"]

    @pytest.mark.asyncio
    async def test_final_submit_reuses_the_draft(
        self, registration_service, configure, make_event
    ):
        event = make_event()
        configure(event, [FORM[0]])
        draft = await registration_service.submit(PARTICIPANT, event.id, {}, as_draft=True)

        result = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        assert result.registration.id == draft.registration.id
        assert result.registration.status == RegistrationStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_resubmit_returns_active_registration_unchanged(
        self, registration_service, configure, make_event, payment_client
    ):
        event = make_event(price=10.0)
        configure(event, [FORM[0]])
        first = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        again = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Someone else"})

        assert again.resubmitted is True
        assert again.registration.id == first.registration.id
        assert again.registration.answers == {"f1": "Jane"}
        assert again.client_secret == first.client_secret
        assert len(payment_client.created) == 1

    @pytest.mark.asyncio
    async def test_draft_over_active_registration_is_rejected(
        self, registration_service, configure, make_event
    ):
        event = make_event()
        configure(event, [FORM[0]])
        await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        with pytest.raises(InvalidTransition):
            await registration_service.submit(PARTICIPANT, event.id, {}, as_draft=True)

    @pytest.mark.asyncio
    async def test_withdrawn_registration_allows_a_new_one(
        self, registration_service, review_service, configure, make_event
    ):
        event = make_event()
        configure(event, [FORM[0]])
        first = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})
        review_service.withdraw(PARTICIPANT, first.registration.id)

        second = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        assert second.registration.id != first.registration.id
        assert second.registration.status == RegistrationStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_provider_failure_stores_nothing(
        self, registration_service, directory, configure, make_event, payment_client
    ):
        event = make_event(price=25.0)
        configure(event, [FORM[0]])
        payment_client.fail_requests = True

        with pytest.raises(PaymentProviderError):
            await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        assert directory.list_for_event(VENDOR, event.id).pagination.total == 0

    @pytest.mark.asyncio
    async def test_files_are_uploaded_and_kept_across_drafts(
        self, registration_service, configure, make_event, storage_client
    ):
        event = make_event()
        configure(event, [FORM[0], PHOTO_FIELD])

        draft = await registration_service.submit(
            PARTICIPANT, event.id, {}, files={"photo": _photo()}, as_draft=True
        )
        result = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        assert result.registration.id == draft.registration.id
        assert len(storage_client.uploads) == 1
        reference = result.registration.file_references()["photo"]
        assert reference.original_name == "me.png"
        assert reference.mimetype == "image/png"
        assert "photo" not in result.registration.answers

    @pytest.mark.asyncio
    async def test_file_rules_are_enforced(self, registration_service, configure, make_event):
        event = make_event()
        configure(event, [FORM[0], PHOTO_FIELD])

        with pytest.raises(ValidationFailed) as exc_info:
            await registration_service.submit(
                PARTICIPANT,
                event.id,
                {"f1": "Jane"},
                files={"photo": FileUpload(filename="cv.pdf", content_type="application/pdf", size=10)},
            )

        assert exc_info.value.errors == {"photo": "Photo has a file type that is not allowed"}

    @pytest.mark.asyncio
    async def test_storage_failure_is_reported(
        self, registration_service, configure, make_event, storage_client
    ):
        event = make_event()
        configure(event, [FORM[0], PHOTO_FIELD])
        storage_client.fail_requests = True

        with pytest.raises(StorageError):
            await registration_service.submit(
                PARTICIPANT, event.id, {"f1": "Jane"}, files={"photo": _photo()}
            )


class TestUpdateRegistration:
    """Test participant edits after saving or submitting"""

    @pytest.mark.asyncio
    async def test_submitted_registration_is_checked_against_its_snapshot(
        self, registration_service, config_service, configure, make_event
    ):
        event = make_event()
        configure(event, [FORM[0]])
        submitted = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})
        # The vendor adds a required field after the submission
        configure(event, [FORM[0], {**FORM[1], "order": 1}])

        updated = await registration_service.update_registration(
            PARTICIPANT, submitted.registration.id, {"f1": "Jane Doe"}
        )

        assert updated.answers == {"f1": "Jane Doe"}
        assert updated.status == RegistrationStatus.SUBMITTED

        with pytest.raises(ValidationFailed):
            await registration_service.update_registration(
                PARTICIPANT, submitted.registration.id, {"f1": ""}
            )

    @pytest.mark.asyncio
    async def test_only_the_participant_may_edit(
        self, registration_service, configure, make_event
    ):
        event = make_event()
        configure(event, [FORM[0]])
        submitted = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})

        for actor in (OTHER_PARTICIPANT, VENDOR):
            with pytest.raises(Forbidden):
                await registration_service.update_registration(
                    actor, submitted.registration.id, {"f1": "Mallory"}
                )

    @pytest.mark.asyncio
    async def test_registration_under_review_is_locked(
        self, registration_service, review_service, configure, make_event
    ):
        event = make_event()
        configure(event, [FORM[0]])
        submitted = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})
        review_service.start_review(VENDOR, submitted.registration.id)

        with pytest.raises(InvalidTransition):
            await registration_service.update_registration(
                PARTICIPANT, submitted.registration.id, {"f1": "Jane Doe"}
            )


class TestReadRegistration:
    @pytest.mark.asyncio
    async def test_visibility(self, registration_service, configure, make_event):
        event = make_event()
        configure(event, [FORM[0]])
        submitted = await registration_service.submit(PARTICIPANT, event.id, {"f1": "Jane"})
        registration_id = submitted.registration.id

        for actor in (PARTICIPANT, VENDOR, ADMIN):
            assert registration_service.get_registration(actor, registration_id).id == registration_id
        for actor in (OTHER_PARTICIPANT, OTHER_VENDOR):
            with pytest.raises(Forbidden):
                registration_service.get_registration(actor, registration_id)

    @pytest.mark.asyncio
    async def test_get_file(self, registration_service, configure, make_event):
        event = make_event()
        configure(event, [FORM[0], PHOTO_FIELD])
        submitted = await registration_service.submit(
            PARTICIPANT, event.id, {"f1": "Jane"}, files={"photo": _photo()}
        )
        registration_id = submitted.registration.id

        reference = registration_service.get_file(VENDOR, registration_id, "file_1")

        assert reference.url == "https://files.example.test/file_1/me.png"
        with pytest.raises(NotFound):
            registration_service.get_file(VENDOR, registration_id, "file_99")
