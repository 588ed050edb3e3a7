from __future__ import annotations

import logging
import uuid
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from app.api.schemas import (
    CheckNumberSchema,
    GroupSchema,
    SendGroupMessageSchema,
    SendMediaUrlSchema,
    SendMessageSchema,
    SendOTPSchema,
    SendPollSchema,
    StatusSchema,
)
from app.application.exceptions import GatewayError
from app.application.use_cases.messaging import MessagingService
from app.application.use_cases.session_manager import SessionManager
from app.core.config import settings
from app.domain.entities.poll import PollOption
from app.wiring.dependencies import get_messaging_service, get_session_manager

router = APIRouter(prefix="/whatsapp")
logger = logging.getLogger(__name__)


@router.get("/status", response_model=StatusSchema)
def get_status(session: SessionManager = Depends(get_session_manager)):
    snapshot = session.get_status()
    return StatusSchema(status=snapshot.state, qr=snapshot.qr, detail=snapshot.detail)


@router.post("/send-message")
async def send_message(
    req: SendMessageSchema,
    messaging: MessagingService = Depends(get_messaging_service),
):
    try:
        result = await messaging.send_message(req.to, req.message)
    except GatewayError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.post("/send-otp")
async def send_otp(
    req: SendOTPSchema,
    messaging: MessagingService = Depends(get_messaging_service),
):
    try:
        result = await messaging.send_otp(req.to, req.otp, expiry_minutes=req.expiryMinutes)
    except GatewayError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.post("/send-media")
async def send_media(
    to: str = Form(...),
    caption: str | None = Form(None),
    file: UploadFile | None = File(None),
    messaging: MessagingService = Depends(get_messaging_service),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    stored = upload_dir / f"{uuid.uuid4().hex}{Path(file.filename).suffix}"
    stored.write_bytes(await file.read())

    try:
        result = await messaging.send_media(to, str(stored), caption=caption)
    except GatewayError as e:
        raise HTTPException(status_code=400, detail=str(e))
    finally:
        stored.unlink(missing_ok=True)
    return result.to_dict()


@router.post("/send-media-url")
async def send_media_from_url(
    req: SendMediaUrlSchema,
    messaging: MessagingService = Depends(get_messaging_service),
):
    if not req.url:
        raise HTTPException(status_code=400, detail="URL is required")
    if not req.to:
        raise HTTPException(status_code=400, detail="Recipient phone number is required")
    try:
        result = await messaging.send_media_from_url(req.to, req.url, caption=req.caption, filename=req.filename)
    except GatewayError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.post("/check-number")
async def check_number(
    req: CheckNumberSchema,
    messaging: MessagingService = Depends(get_messaging_service),
):
    exists = await messaging.check_number_exists(req.phone)
    return {"phone": req.phone, "exists": exists}


@router.post("/send-poll")
async def send_poll(
    req: SendPollSchema,
    messaging: MessagingService = Depends(get_messaging_service),
):
    try:
        result = await messaging.send_poll(
            to=req.to,
            poll_name=req.pollName,
            options=[PollOption(name=o.name, local_id=o.localId) for o in req.pollOptions],
            response_messages=req.responseMessages,
            webhook_url=str(req.webhookUrl) if req.webhookUrl else None,
            allow_multiple_answers=req.allowMultipleAnswers,
        )
    except GatewayError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.post("/send-group-message")
async def send_group_message(
    req: SendGroupMessageSchema,
    messaging: MessagingService = Depends(get_messaging_service),
):
    try:
        result = await messaging.send_group_message(req.groupId, req.message)
    except GatewayError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.get("/groups", response_model=list[GroupSchema])
async def get_groups(messaging: MessagingService = Depends(get_messaging_service)):
    try:
        groups = await messaging.get_groups()
    except GatewayError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [GroupSchema(id=g.id, name=g.name, participantCount=g.participant_count) for g in groups]


@router.post("/reinitialize", response_model=StatusSchema)
async def reinitialize(session: SessionManager = Depends(get_session_manager)):
    await session.reinitialize()
    snapshot = session.get_status()
    return StatusSchema(status=snapshot.state, qr=snapshot.qr, detail=snapshot.detail)


@router.post("/disconnect", response_model=StatusSchema)
async def disconnect(session: SessionManager = Depends(get_session_manager)):
    try:
        await session.disconnect()
    except GatewayError as e:
        logger.error("Disconnect failed", extra={"error": str(e)})
        raise HTTPException(status_code=502, detail=str(e))
    snapshot = session.get_status()
    return StatusSchema(status=snapshot.state, qr=snapshot.qr, detail=snapshot.detail)
