"""HTTP API for device polling and browser editing of settings sessions."""

import hmac
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel

from .config import settings
from .domain import ParameterDefinition
from .errors import CapacityExceeded, InvalidValue, MalformedSchema, NotFound
from .session_manager import acknowledge, end_session, get_settings, new_session, poll, submit_update
from utils.logging_utils import get_tagged_logger, mask_token

logger = get_tagged_logger(__name__, tag="app/api")


def require_device_token(x_device_token: str | None = Header(default=None)):
    """
    Validate the X-Device-Token header against the configured device_api_key.
    """
    # No key configured: device endpoints are open (dev/default mode).
    if not settings.device_api_key:
        return

    if not x_device_token:
        logger.debug("No device token provided")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing device token")

    if hmac.compare_digest(str(x_device_token), str(settings.device_api_key)):
        return

    logger.debug("Invalid device token provided")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid device token")


device_router = APIRouter(prefix="/stb", tags=["device"], dependencies=[Depends(require_device_token)])
web_router = APIRouter(prefix="/v1", tags=["settings"])


class NewSessionResponse(BaseModel):
    """Identity handed to the device: key for the human, secret for itself."""
    key: str
    secret: str


class PollResponse(BaseModel):
    """Poll outcome; ``values`` is only present when ``changed`` is True."""
    changed: bool
    revision: int
    values: Optional[List[ParameterDefinition]] = None


class AckResponse(BaseModel):
    """Acknowledgment result; ``erased`` is False for a stale revision."""
    accepted: bool = True
    erased: bool = False


class SettingsResponse(BaseModel):
    """Current definitions as shown to the browser."""
    revision: int
    values: List[ParameterDefinition]


class UpdateRequest(BaseModel):
    """Partial or full map of parameter name to new value."""
    values: Dict[str, Any]
    revision: Optional[int] = None


class UpdateResponse(SettingsResponse):
    """Authoritative state after the update."""
    conflict: bool = False
    expected_revision: Optional[int] = None


def _unknown_session() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown session")


@device_router.post("/new-session", response_model=NewSessionResponse)
def create_session(schema_document: Any = Body(...)):
    """Open a session for the device's parameter schema."""
    try:
        identity = new_session(schema_document)
    except MalformedSchema as exc:
        logger.info(f"Rejected malformed schema: {exc.reason}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Malformed schema: {exc.reason}")
    except CapacityExceeded:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Too many open sessions; retry later",
            headers={"Retry-After": str(settings.retry_after_seconds)},
        )
    return NewSessionResponse(key=identity.key, secret=identity.secret)


@device_router.get("/poll", response_model=PollResponse, response_model_exclude_none=True)
def poll_session(sid: str = Query(...), revision: int = Query(..., ge=0)):
    """Return the full value set if it changed since ``revision``."""
    try:
        values = poll(sid, revision)
    except NotFound:
        raise _unknown_session()
    if values is None:
        return PollResponse(changed=False, revision=revision)
    return PollResponse(changed=True, revision=values.revision, values=values.values)


@device_router.post("/ack", response_model=AckResponse)
def acknowledge_session(sid: str = Query(...), revision: int = Query(..., ge=0)):
    """Confirm receipt of ``revision``; the session is erased if it is current."""
    try:
        erased = acknowledge(sid, revision)
    except NotFound:
        raise _unknown_session()
    return AckResponse(erased=erased)


@device_router.post("/end-session", response_model=AckResponse)
def end_device_session(sid: str = Query(...)):
    """Cancel a session before the human has finished with it."""
    try:
        end_session(sid)
    except NotFound:
        raise _unknown_session()
    return AckResponse(erased=True)


@web_router.get("/settings/{key}", response_model=SettingsResponse)
def read_settings(key: str):
    """Return the latest definitions for the human editing view."""
    try:
        values = get_settings(key)
    except NotFound:
        raise _unknown_session()
    return SettingsResponse(revision=values.revision, values=values.values)


@web_router.post("/settings/{key}", response_model=UpdateResponse)
def update_settings(key: str, req: UpdateRequest):
    """Apply the submitted edits all-or-nothing."""
    try:
        result = submit_update(key, req.values, req.revision)
    except NotFound:
        raise _unknown_session()
    except InvalidValue as exc:
        logger.info(f"Rejected update for {mask_token(key)}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"field": exc.field, "message": exc.reason},
        )
    return UpdateResponse(
        revision=result.revision,
        values=result.values,
        conflict=result.conflict,
        expected_revision=result.expected_revision,
    )
