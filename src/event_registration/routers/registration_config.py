"""Vendor endpoints for an event's registration form"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlmodel import Session

from event_registration.auth.dependencies import get_current_actor
from event_registration.auth.models import Actor
from event_registration.models.database import get_db
from event_registration.models.registration_config import RegistrationConfig
from event_registration.services.registration_config_service import (
    RegistrationConfigService,
    RegistrationConfigUpdate,
)

router = APIRouter(prefix="/events/{event_id}/registration-config", tags=["Registration config"])


class DuplicateConfigRequest(BaseModel):
    source_event_id: uuid.UUID


class ReorderFieldsRequest(BaseModel):
    field_ids: List[str]


def config_response(config: RegistrationConfig) -> dict:
    return config.model_dump(mode="json")


@router.get("")
async def get_registration_config(event_id: uuid.UUID, db: Session = Depends(get_db)):
    """Registration form of an event; public so participants can render it"""
    config = RegistrationConfigService(db).get_config(event_id)
    return config_response(config)


@router.put("")
async def save_registration_config(
    event_id: uuid.UUID,
    payload: RegistrationConfigUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    config = RegistrationConfigService(db).create_or_update_config(actor, event_id, payload)
    return config_response(config)


@router.post("/duplicate")
async def duplicate_registration_config(
    event_id: uuid.UUID,
    payload: DuplicateConfigRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    config = RegistrationConfigService(db).duplicate_config(
        actor, event_id, payload.source_event_id
    )
    return config_response(config)


@router.post("/disable", status_code=status.HTTP_204_NO_CONTENT)
async def disable_registration(
    event_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    RegistrationConfigService(db).disable(actor, event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/reorder")
async def reorder_registration_fields(
    event_id: uuid.UUID,
    payload: ReorderFieldsRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    config = RegistrationConfigService(db).reorder_fields(actor, event_id, payload.field_ids)
    return config_response(config)
