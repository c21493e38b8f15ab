"""Participant and vendor endpoints for registrations"""

import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Body,
    Depends,
    HTTPException,
    Query,
    Request,
    Response,
    status,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ValidationError
from sqlmodel import Session
from starlette.datastructures import UploadFile

from event_registration.auth.dependencies import get_current_actor
from event_registration.auth.models import Actor
from event_registration.backends.email_client import EmailClient
from event_registration.backends.payment_client import PaymentClient
from event_registration.backends.storage_client import StorageClient
from event_registration.logging_config import get_logger
from event_registration.models.database import get_db
from event_registration.models.files import FileUpload
from event_registration.models.registration import Registration, RegistrationStatus
from event_registration.services.clients import (
    get_email_client,
    get_payment_client,
    get_storage_client,
)
from event_registration.services.event_service import EventService
from event_registration.services.notification_service import (
    NotificationService,
    RegistrationNotice,
)
from event_registration.services.payment_service import PaymentService
from event_registration.services.registration_config_service import (
    RegistrationConfigService,
)
from event_registration.services.registration_directory import (
    RegistrationDirectory,
    RegistrationFilters,
    SortField,
)
from event_registration.services.registration_service import RegistrationService
from event_registration.services.review_service import ReviewDecision, ReviewService

router = APIRouter(tags=["Registrations"])
logger = get_logger(__name__)


class SubmissionRequest(BaseModel):
    answers: Dict[str, Any] = {}
    as_draft: bool = False


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str


class WithdrawRequest(BaseModel):
    reason: Optional[str] = None


class ReviewRequest(BaseModel):
    decision: ReviewDecision
    remarks: Optional[str] = None


def registration_response(registration: Registration) -> dict:
    return registration.model_dump(mode="json", exclude={"field_snapshot"})


def payment_response(registration: Registration, intent) -> Optional[dict]:
    if intent is None:
        return None
    return {
        "payment_intent_id": intent.id,
        "client_secret": intent.client_secret,
        "amount": registration.payment_amount,
        "currency": registration.payment_currency,
    }


async def read_submission(request: Request) -> Tuple[Dict[str, Any], Dict[str, FileUpload], bool]:
    """
    Read answers, uploaded files and the draft flag from a submission request.

    Multipart bodies carry ``answers`` as a JSON string, ``as_draft`` and one
    file part per file field, named by field id. JSON bodies carry
    ``answers`` and ``as_draft`` only.
    """
    uploads: Dict[str, FileUpload] = {}
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="Request body is not valid JSON")
    else:
        form = await request.form()
        try:
            answers = json.loads(form.get("answers") or "{}")
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="answers must be a JSON object")
        body = {"answers": answers, "as_draft": form.get("as_draft") or False}

        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                data = await value.read()
                uploads[key] = FileUpload(
                    filename=value.filename or key,
                    content_type=value.content_type or "application/octet-stream",
                    size=len(data),
                    data=data,
                )

    try:
        submission = SubmissionRequest.model_validate(body)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))
    return submission.answers, uploads, submission.as_draft


@router.post("/events/{event_id}/registrations", status_code=status.HTTP_201_CREATED)
async def submit_registration(
    event_id: uuid.UUID,
    request: Request,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
    storage_client: StorageClient = Depends(get_storage_client),
    email_client: Optional[EmailClient] = Depends(get_email_client),
):
    """Submit a registration, or save it as a draft"""
    answers, uploads, as_draft = await read_submission(request)
    logger.info(
        f"{'Saving draft' if as_draft else 'Submitting registration'} for event {event_id} "
        f"by {actor.user_id} with {len(uploads)} file(s)"
    )

    service = RegistrationService(db, payment_client, storage_client)
    result = await service.submit(actor, event_id, answers, uploads, as_draft=as_draft)
    registration = result.registration

    if not as_draft and not result.resubmitted:
        notice = RegistrationNotice.build(result.event, result.config, registration)
        background_tasks.add_task(
            NotificationService(email_client).notify_submission, notice
        )
        logger.info(f"Queued submission notifications for registration {registration.id}")

    return {
        "registration": registration_response(registration),
        "payment": payment_response(registration, result.payment),
    }


@router.get("/registrations")
async def list_registrations(
    event_id: Optional[uuid.UUID] = None,
    participant_id: Optional[str] = None,
    status_filter: Optional[List[RegistrationStatus]] = Query(None, alias="status"),
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    actionable: bool = False,
    sort_by: SortField = SortField.SUBMITTED_AT,
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """List an event's registrations (vendor) or a participant's own registrations"""
    filters = RegistrationFilters(
        status=status_filter,
        search=search,
        date_from=date_from,
        date_to=date_to,
        actionable=actionable,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    directory = RegistrationDirectory(db)
    if event_id is not None:
        result = directory.list_for_event(actor, event_id, filters, page, page_size)
    else:
        result = directory.list_for_participant(
            actor, participant_id or actor.user_id, filters, page, page_size
        )

    return {
        "registrations": [registration_response(r) for r in result.registrations],
        "pagination": result.pagination.model_dump(),
        "stats": {"by_status": result.by_status},
    }


@router.get("/registrations/{registration_id}")
async def get_registration(
    registration_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
    storage_client: StorageClient = Depends(get_storage_client),
):
    """Registration with the workflow actions the caller may take next"""
    service = RegistrationService(db, payment_client, storage_client)
    registration = service.get_registration(actor, registration_id)
    response = registration_response(registration)
    response["actions"] = [
        action.value for action in service.available_actions(actor, registration)
    ]
    return response


@router.put("/registrations/{registration_id}")
async def update_registration(
    registration_id: uuid.UUID,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
    storage_client: StorageClient = Depends(get_storage_client),
):
    """Edit the answers of a draft or submitted registration"""
    answers, uploads, _ = await read_submission(request)
    service = RegistrationService(db, payment_client, storage_client)
    registration = await service.update_registration(actor, registration_id, answers, uploads)
    return registration_response(registration)


@router.post("/registrations/{registration_id}/confirm-payment")
async def confirm_payment(
    registration_id: uuid.UUID,
    payload: ConfirmPaymentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
):
    registration = await PaymentService(db, payment_client).confirm_payment(
        actor, registration_id, payload.payment_intent_id
    )
    return registration_response(registration)


@router.post("/registrations/{registration_id}/retry-payment")
async def retry_payment(
    registration_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
):
    """Start a new payment attempt after a failed one"""
    registration, intent = await PaymentService(db, payment_client).retry_payment(
        actor, registration_id
    )
    return {
        "registration": registration_response(registration),
        "payment": payment_response(registration, intent),
    }


@router.post("/registrations/{registration_id}/withdraw", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw_registration(
    registration_id: uuid.UUID,
    payload: Optional[WithdrawRequest] = Body(None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ReviewService(db).withdraw(actor, registration_id, payload.reason if payload else None)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/registrations/{registration_id}/start-review")
async def start_review(
    registration_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    registration = ReviewService(db).start_review(actor, registration_id)
    return registration_response(registration)


@router.post("/registrations/{registration_id}/review")
async def review_registration(
    registration_id: uuid.UUID,
    payload: ReviewRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    email_client: Optional[EmailClient] = Depends(get_email_client),
):
    """Approve or reject a registration"""
    registration = ReviewService(db).review(
        actor, registration_id, payload.decision, payload.remarks
    )

    event = EventService(db).require_event(registration.event_id)
    config = RegistrationConfigService(db).get_config_for_event(registration.event_id)
    notice = RegistrationNotice.build(event, config, registration)
    if notice.to_participant:
        background_tasks.add_task(
            NotificationService(email_client).notify_review_decision, notice
        )
        logger.info(f"Queued review decision email for registration {registration.id}")

    return registration_response(registration)


@router.get("/registrations/{registration_id}/files/{file_id}")
async def download_file(
    registration_id: uuid.UUID,
    file_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
    storage_client: StorageClient = Depends(get_storage_client),
):
    """Redirect to the stored file"""
    service = RegistrationService(db, payment_client, storage_client)
    reference = service.get_file(actor, registration_id, file_id)
    return RedirectResponse(url=reference.url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
