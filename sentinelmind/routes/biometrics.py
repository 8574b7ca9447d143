# sentinelmind/routes/biometrics.py
import base64
import binascii
import io
import logging
from typing import Optional

import numpy as np
from fastapi import APIRouter, HTTPException, Request
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from ..services.capture_controller import BiometricCaptureController, CaptureMode, CaptureOutcome
from ..services.errors import LengthMismatch, NoTemplateRegistered
from ..services.frame_source import StaticFrameSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/biometrics")


class FrameRequest(BaseModel):
    frame: str  # base64 image, optionally as a data: URL


class RegistrationStatus(BaseModel):
    owner_id: str
    registered: bool
    registered_at: Optional[str] = None


class EnrollResponse(BaseModel):
    owner_id: str
    registered_at: str
    signature_length: int
    message: str


class VerifyResponse(BaseModel):
    success: bool
    score: float
    threshold: float
    message: str


class RemoveResponse(BaseModel):
    owner_id: str
    message: str


def decode_frame(payload: str) -> np.ndarray:
    """Decode a base64 (or data URL) image into an RGB array; HTTP 400 if it is not an image"""
    if payload.startswith("data:"):
        payload = payload.split(",", 1)[-1]

    try:
        raw = base64.b64decode(payload, validate=True)
        with Image.open(io.BytesIO(raw)) as image:
            return np.asarray(image.convert("RGB"))
    except (binascii.Error, UnidentifiedImageError, ValueError, OSError) as e:
        logger.warning(f"Rejected undecodable frame: {e}")
        raise HTTPException(status_code=400, detail="Frame is not a decodable image")


async def _run_capture(req: Request, owner_id: str, frame: np.ndarray, mode: CaptureMode) -> CaptureOutcome:
    """Drive a single-frame capture session: no countdown, one presence sample."""
    settings = req.app.state.settings
    controller = BiometricCaptureController(
        StaticFrameSource([frame]),
        req.app.state.verifier,
        mode=mode,
        owner_id=owner_id,
        presence_detector=req.app.state.presence_detector,
        poll_interval=settings.poll_interval,
        countdown_from=0,
        acquire_timeout=settings.camera_ready_timeout,
    )

    async with controller:
        await controller.start()
        if not controller.tick():
            raise HTTPException(status_code=422, detail="No face detected. Please center your face in the frame.")
        outcome = await controller.capture()

    error = outcome.error
    if isinstance(error, NoTemplateRegistered):
        raise HTTPException(status_code=404, detail=outcome.message)
    if isinstance(error, LengthMismatch):
        raise HTTPException(status_code=409, detail=outcome.message)
    if isinstance(error, ValueError):
        raise HTTPException(status_code=400, detail=outcome.message)
    if error is not None:
        raise error
    return outcome


@router.get("/{owner_id}", response_model=RegistrationStatus)
async def registration_status(owner_id: str, req: Request):
    """Whether the owner has an enrolled template"""
    template = req.app.state.verifier.store.get(owner_id)
    if template is None:
        return RegistrationStatus(owner_id=owner_id, registered=False)
    return RegistrationStatus(
        owner_id=owner_id,
        registered=True,
        registered_at=template.registered_at.isoformat(),
    )


@router.post("/{owner_id}/enroll", response_model=EnrollResponse)
async def enroll(owner_id: str, request: FrameRequest, req: Request):
    """Register (or replace) the owner's facial template from one snapshot"""
    frame = decode_frame(request.frame)
    outcome = await _run_capture(req, owner_id, frame, CaptureMode.ENROLL)

    template = outcome.template
    return EnrollResponse(
        owner_id=owner_id,
        registered_at=template.registered_at.isoformat(),
        signature_length=len(template.signature),
        message=outcome.message,
    )


@router.post("/{owner_id}/verify", response_model=VerifyResponse)
async def verify(owner_id: str, request: FrameRequest, req: Request):
    """Compare a snapshot with the owner's enrolled template"""
    frame = decode_frame(request.frame)
    outcome = await _run_capture(req, owner_id, frame, CaptureMode.VERIFY)

    return VerifyResponse(
        success=outcome.success,
        score=round(outcome.score, 4),
        threshold=req.app.state.verifier.acceptance_threshold,
        message=outcome.message,
    )


@router.delete("/{owner_id}", response_model=RemoveResponse)
async def remove(owner_id: str, req: Request):
    """Delete the owner's facial template"""
    try:
        req.app.state.verifier.remove(owner_id)
    except NoTemplateRegistered:
        raise HTTPException(status_code=404, detail="No facial data registered for this user.")

    return RemoveResponse(owner_id=owner_id, message="Face registration removed.")
