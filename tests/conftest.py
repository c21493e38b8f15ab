"""Shared test configuration and fixtures for the event registration tests"""

import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from tests.config import PARTICIPANT, VENDOR, test_config

# Must be set before event_registration.config is imported
os.environ["DATABASE_URL"] = test_config["database_url"]
os.environ["AUTH0_DOMAIN"] = test_config["auth0_domain"]
os.environ["STRIPE_SECRET_KEY"] = test_config["stripe_secret_key"]
os.environ["STRIPE_WEBHOOK_SECRET"] = test_config["stripe_webhook_secret"]
os.environ["STORAGE_BASE_URL"] = test_config["storage_base_url"]

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from event_registration.auth.dependencies import get_current_actor  # noqa: E402
from event_registration.auth.models import Actor  # noqa: E402
from event_registration.backends.payment_client import (  # noqa: E402
    PaymentClient,
    PaymentIntentInfo,
    to_minor_units,
)
from event_registration.backends.storage_client import StorageClient  # noqa: E402
from event_registration.errors import PaymentProviderError, StorageError  # noqa: E402
from event_registration.main import app  # noqa: E402
from event_registration.models.database import get_db  # noqa: E402
from event_registration.models.event import Event  # noqa: E402
from event_registration.models.files import FileReference, FileUpload  # noqa: E402
from event_registration.services.clients import (  # noqa: E402
    get_email_client,
    get_payment_client,
    get_storage_client,
)
from event_registration.services.event_service import EventService  # noqa: E402
from event_registration.services.payment_service import PaymentService  # noqa: E402
from event_registration.services.registration_config_service import (  # noqa: E402
    RegistrationConfigService,
    RegistrationConfigUpdate,
)
from event_registration.services.registration_directory import (  # noqa: E402
    RegistrationDirectory,
)
from event_registration.services.registration_service import (  # noqa: E402
    RegistrationService,
)
from event_registration.services.review_service import ReviewService  # noqa: E402

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class FakePaymentClient(PaymentClient):
    """In-memory payment provider; webhook signatures are still verified by Stripe"""

    def __init__(self):
        super().__init__(test_config)
        self.intents: Dict[str, PaymentIntentInfo] = {}
        self.created: List[dict] = []
        self.fail_requests = False

    async def create_intent(self, amount, currency, metadata, idempotency_key=None):
        if self.fail_requests:
            raise PaymentProviderError()
        intent_id = f"pi_{uuid.uuid4().hex[:24]}"
        intent = PaymentIntentInfo(
            id=intent_id,
            client_secret=f"{intent_id}_secret_test",
            status="requires_payment_method",
            amount=to_minor_units(amount),
            currency=currency,
        )
        self.intents[intent_id] = intent
        self.created.append({"metadata": metadata, "idempotency_key": idempotency_key})
        return intent

    async def retrieve_intent(self, intent_id):
        if self.fail_requests or intent_id not in self.intents:
            raise PaymentProviderError()
        return self.intents[intent_id]

    def settle(self, intent_id: str) -> None:
        self.intents[intent_id].status = "succeeded"


class FakeStorageClient(StorageClient):
    def __init__(self):
        super().__init__(test_config)
        self.uploads: List[FileUpload] = []
        self.fail_requests = False

    async def upload(self, field_id: str, upload: FileUpload) -> FileReference:
        if self.fail_requests:
            raise StorageError()
        self.uploads.append(upload)
        file_id = f"file_{len(self.uploads)}"
        return FileReference(
            file_id=file_id,
            field_id=field_id,
            original_name=upload.filename,
            url=f"{self.base_url}/{file_id}/{upload.filename}",
            size=upload.size,
            mimetype=upload.content_type,
            uploaded_at=datetime.now(timezone.utc),
        )


class FakeEmailClient:
    def __init__(self):
        self.sent: List[dict] = []

    async def send_email(self, to, text, subject, tag=None, reply_to=None):
        self.sent.append(
            {"to": to, "text": text, "subject": subject, "tag": tag, "reply_to": reply_to}
        )
        return {"id": f"<{len(self.sent)}@mailgun.test>"}


@pytest.fixture
def engine():
    """In-memory SQLite database shared by every session of one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def _db_session(engine):
    """Private DB session for fixtures only.

    Do not use this fixture directly in tests. Prefer the service fixtures.
    """
    session = Session(engine)
    yield session
    session.close()


@pytest.fixture
def payment_client():
    return FakePaymentClient()


@pytest.fixture
def storage_client():
    return FakeStorageClient()


@pytest.fixture
def email_client():
    return FakeEmailClient()


@pytest.fixture
def event_service(_db_session):
    return EventService(_db_session)


@pytest.fixture
def config_service(_db_session):
    return RegistrationConfigService(_db_session)


@pytest.fixture
def registration_service(_db_session, payment_client, storage_client):
    return RegistrationService(_db_session, payment_client, storage_client)


@pytest.fixture
def payment_service(_db_session, payment_client):
    return PaymentService(_db_session, payment_client)


@pytest.fixture
def review_service(_db_session):
    return ReviewService(_db_session)


@pytest.fixture
def directory(_db_session):
    return RegistrationDirectory(_db_session)


@pytest.fixture
def make_event(event_service):
    """Create an event owned by VENDOR (or the given vendor)"""

    def _make_event(price: float = 0.0, vendor: Actor = VENDOR, **kwargs) -> Event:
        event = Event(
            vendor_id=vendor.user_id,
            title=kwargs.pop("title", "Spring Pottery Workshop"),
            price=price,
            contact_email=kwargs.pop("contact_email", vendor.email),
            **kwargs,
        )
        return event_service.create_event(event)

    return _make_event


@pytest.fixture
def configure(config_service):
    """Save a registration config for an event as its vendor"""

    def _configure(event: Event, fields: List[dict], **settings):
        payload = RegistrationConfigUpdate(fields=fields, **settings)
        return config_service.create_or_update_config(VENDOR, event.id, payload)

    return _configure


@pytest.fixture
def name_field():
    return [{"id": "f1", "type": "text", "label": "Full name", "required": True, "order": 0}]


@pytest.fixture
def authenticated_client(_db_session, payment_client, storage_client, email_client):
    """Test client with fake backends; ``act_as`` switches the calling actor"""

    original_overrides = app.dependency_overrides.copy()
    current = {"actor": PARTICIPANT}

    async def mock_get_current_actor():
        return current["actor"]

    def get_test_db():
        return _db_session

    def act_as(actor: Actor) -> None:
        current["actor"] = actor

    app.dependency_overrides.clear()
    app.dependency_overrides[get_current_actor] = mock_get_current_actor
    app.dependency_overrides[get_db] = get_test_db
    app.dependency_overrides[get_payment_client] = lambda: payment_client
    app.dependency_overrides[get_storage_client] = lambda: storage_client
    app.dependency_overrides[get_email_client] = lambda: email_client

    client = TestClient(app)

    yield client, act_as

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)
