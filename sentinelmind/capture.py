# sentinelmind/capture.py
"""
Webcam enrollment and verification from a terminal.

    python -m sentinelmind.capture enroll alice
    python -m sentinelmind.capture verify alice
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config import Settings, get_settings
from .services.biometric_verifier import BiometricVerifier
from .services.capture_controller import (
    BiometricCaptureController,
    CaptureMode,
    CaptureOutcome,
    CaptureSession,
    CaptureState,
)
from .services.errors import CameraUnavailable
from .services.face_presence import FacePresenceDetector
from .services.frame_source import FrameSource, OpenCVFrameSource
from .services.perceptual_hash import PerceptualHashGenerator
from .services.template_store import SqliteTemplateStore

logger = logging.getLogger(__name__)


def print_progress(session: CaptureSession):
    if session.state is CaptureState.COUNTDOWN and session.countdown:
        print(f"  {session.countdown}...")


def build_controller(mode: CaptureMode, owner_id: str, settings: Settings,
                     frame_source: Optional[FrameSource] = None,
                     on_state_change=print_progress) -> BiometricCaptureController:
    """Wire a capture controller to the SQLite template store and a camera"""
    verifier = BiometricVerifier(
        SqliteTemplateStore(settings.template_db),
        generator=PerceptualHashGenerator(
            resolution=settings.phash_resolution,
            stride=settings.phash_stride,
            threshold=settings.phash_threshold,
        ),
        acceptance_threshold=settings.acceptance_threshold,
    )
    return BiometricCaptureController(
        frame_source or OpenCVFrameSource(),
        verifier,
        mode=mode,
        owner_id=owner_id,
        presence_detector=FacePresenceDetector(settings.presence_min_ratio, settings.presence_max_ratio),
        poll_interval=settings.poll_interval,
        countdown_from=settings.countdown_from,
        countdown_step=settings.countdown_step,
        acquire_timeout=settings.camera_ready_timeout,
        on_state_change=on_state_change,
    )


async def run_capture(controller: BiometricCaptureController, face_timeout: float = 15.0) -> CaptureOutcome:
    """Start the camera, wait for a face, then capture. Gives up (cancelled) if no face shows."""
    async with controller:
        try:
            await controller.start()
        except CameraUnavailable:
            return controller.outcome

        if not await controller.wait_for_face(timeout=face_timeout):
            logger.info(f"No face detected within {face_timeout}s")
            return controller.cancel()

        return await controller.capture()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Facial biometric capture")
    parser.add_argument("mode", choices=[m.value for m in CaptureMode])
    parser.add_argument("owner_id")
    parser.add_argument("--face-timeout", type=float, default=15.0,
                        help="seconds to wait for a face before giving up")
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    controller = build_controller(CaptureMode(args.mode), args.owner_id, settings)
    print("Look at the camera...")
    try:
        outcome = asyncio.run(run_capture(controller, args.face_timeout))
    except KeyboardInterrupt:
        controller.cancel()
        print("Capture cancelled.")
        return 130
    finally:
        controller.verifier.store.close()

    if outcome.state is CaptureState.CANCELLED:
        print("No face detected. Please center your face in the frame.")
    else:
        print(outcome.message)
    return 0 if outcome.success else 1


if __name__ == "__main__":
    sys.exit(main())
