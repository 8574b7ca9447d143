# sentinelmind/services/capture_controller.py
"""
Biometric capture session as an explicit finite state machine.

    idle -> camera_acquiring -> streaming <-> face_detecting
         -> countdown -> captured -> success | failed

Any non-terminal state may move to cancelled. Reaching a terminal state
(success, failed, cancelled) stops the presence polling task and releases
the frame source exactly once, whichever path got there.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .biometric_verifier import BiometricVerifier
from .errors import (
    CameraAcquisitionTimeout,
    CameraFailureReason,
    CameraUnavailable,
    CaptureNotReady,
    InvalidTransition,
    LengthMismatch,
    NoTemplateRegistered,
)
from .face_presence import FacePresenceDetector
from .frame_source import CameraConstraints, DEFAULT_CONSTRAINT_LADDER, FrameSource
from .template_store import BiometricTemplate, utc_now

logger = logging.getLogger(__name__)


class CaptureMode(str, Enum):
    ENROLL = "enroll"
    VERIFY = "verify"


class CaptureState(str, Enum):
    IDLE = "idle"
    CAMERA_ACQUIRING = "camera_acquiring"
    STREAMING = "streaming"
    FACE_DETECTING = "face_detecting"
    COUNTDOWN = "countdown"
    CAPTURED = "captured"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (CaptureState.SUCCESS, CaptureState.FAILED, CaptureState.CANCELLED)


class CaptureEvent(str, Enum):
    START = "start"
    CAMERA_READY = "camera_ready"
    TICK = "tick"
    PRESENCE_SAMPLED = "presence_sampled"
    COMMIT = "commit"
    COUNTDOWN_TICK = "countdown_tick"
    CAPTURE = "capture"
    ACCEPT = "accept"
    REJECT = "reject"
    ERROR = "error"
    CANCEL = "cancel"


S, E = CaptureState, CaptureEvent

TRANSITIONS = {
    (S.IDLE, E.START): S.CAMERA_ACQUIRING,
    (S.CAMERA_ACQUIRING, E.CAMERA_READY): S.STREAMING,
    (S.CAMERA_ACQUIRING, E.ERROR): S.FAILED,
    (S.STREAMING, E.TICK): S.FACE_DETECTING,
    (S.FACE_DETECTING, E.PRESENCE_SAMPLED): S.STREAMING,
    (S.STREAMING, E.COMMIT): S.COUNTDOWN,
    (S.COUNTDOWN, E.COUNTDOWN_TICK): S.COUNTDOWN,
    (S.COUNTDOWN, E.CAPTURE): S.CAPTURED,
    (S.CAPTURED, E.ACCEPT): S.SUCCESS,
    (S.CAPTURED, E.REJECT): S.FAILED,
    (S.CAPTURED, E.ERROR): S.FAILED,
}


@dataclass
class CaptureSession:
    """Transient state of one capture UI; discarded once terminal"""
    mode: CaptureMode
    owner_id: str
    state: CaptureState = CaptureState.IDLE
    face_present: bool = False
    countdown: Optional[int] = None
    started_at: datetime = field(default_factory=utc_now)
    history: List[CaptureState] = field(default_factory=lambda: [CaptureState.IDLE])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "owner_id": self.owner_id,
            "state": self.state.value,
            "face_present": self.face_present,
            "countdown": self.countdown,
            "started_at": self.started_at.isoformat(),
        }


@dataclass(frozen=True)
class CaptureOutcome:
    state: CaptureState
    mode: CaptureMode
    owner_id: str
    success: bool
    score: Optional[float] = None
    template: Optional[BiometricTemplate] = None
    error: Optional[Exception] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "mode": self.mode.value,
            "owner_id": self.owner_id,
            "success": self.success,
            "score": None if self.score is None else round(self.score, 4),
            "error": type(self.error).__name__ if self.error else None,
            "message": self.message,
        }


class _SessionCancelled(Exception):
    """Raised internally when cancel() interrupts a suspended step"""


class BiometricCaptureController:
    """
    Drives one enrollment or verification capture.

    Typical use from a UI coroutine:

        controller = BiometricCaptureController(source, verifier, "verify", user_id)
        async with controller:
            await controller.start()
            if await controller.wait_for_face(timeout=15):
                outcome = await controller.capture()

    cancel() is synchronous so it can be wired straight to a button handler;
    it stops polling and releases the camera before returning.
    """

    def __init__(self,
                 frame_source: Optional[FrameSource],
                 verifier: BiometricVerifier,
                 mode: CaptureMode = CaptureMode.VERIFY,
                 owner_id: str = "default",
                 presence_detector: Optional[FacePresenceDetector] = None,
                 poll_interval: float = 0.2,
                 countdown_from: int = 3,
                 countdown_step: float = 0.8,
                 acquire_timeout: float = 10.0,
                 constraint_ladder: Sequence[CameraConstraints] = DEFAULT_CONSTRAINT_LADDER,
                 on_state_change: Optional[Callable[[CaptureSession], None]] = None):
        self.frame_source = frame_source
        self.verifier = verifier
        self.presence_detector = presence_detector or FacePresenceDetector()
        self.poll_interval = poll_interval
        self.countdown_from = countdown_from
        self.countdown_step = countdown_step
        self.acquire_timeout = acquire_timeout
        self.constraint_ladder = tuple(constraint_ladder)
        self.on_state_change = on_state_change

        self.session = CaptureSession(mode=CaptureMode(mode), owner_id=owner_id)
        self.active_constraints: Optional[CameraConstraints] = None

        self._cancel_event: Optional[asyncio.Event] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._released = False
        self._outcome: Optional[CaptureOutcome] = None

    @property
    def state(self) -> CaptureState:
        return self.session.state

    @property
    def outcome(self) -> Optional[CaptureOutcome]:
        return self._outcome

    # ------------------------------------------------------------------
    # State machine core
    # ------------------------------------------------------------------

    def _transition(self, event: CaptureEvent) -> CaptureState:
        current = self.session.state
        if event is CaptureEvent.CANCEL and not current.is_terminal:
            new_state = CaptureState.CANCELLED
        else:
            new_state = TRANSITIONS.get((current, event))
            if new_state is None:
                raise InvalidTransition(current, event)

        self.session.state = new_state
        self.session.history.append(new_state)
        if new_state is not current:
            logger.debug(f"Capture {self.session.owner_id}: {current.value} --{event.value}--> {new_state.value}")

        if self.on_state_change is not None:
            self.on_state_change(self.session)
        return new_state

    def _release(self):
        """Stop polling and free the camera; runs once per session."""
        if self._released:
            return
        self._released = True

        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self.session.countdown = None

        if self.frame_source is not None:
            try:
                self.frame_source.release()
            except Exception as e:
                logger.warning(f"Error releasing frame source: {e}")
        logger.info(f"Capture resources released ({self.state.value})")

    def _finish(self, event: CaptureEvent, success: bool = False, score: Optional[float] = None,
                template: Optional[BiometricTemplate] = None, error: Optional[Exception] = None,
                message: str = "") -> CaptureOutcome:
        self._transition(event)
        self._release()
        self._outcome = CaptureOutcome(
            state=self.state,
            mode=self.session.mode,
            owner_id=self.session.owner_id,
            success=success,
            score=score,
            template=template,
            error=error,
            message=message,
        )
        return self._outcome

    async def _run_cancellable(self, awaitable, timeout: Optional[float] = None):
        """
        Await `awaitable` unless cancel() fires first.
        Raises _SessionCancelled on cancel and asyncio.TimeoutError on timeout.
        """
        if self._cancel_event is None:
            self._cancel_event = asyncio.Event()

        task = asyncio.ensure_future(awaitable)
        cancel_wait = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait({task, cancel_wait}, timeout=timeout,
                                         return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (task, cancel_wait):
                if not pending.done():
                    pending.cancel()

        if self._cancel_event.is_set():
            raise _SessionCancelled()
        if task in done:
            return task.result()
        raise asyncio.TimeoutError()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> CaptureSession:
        """
        Acquire the camera and begin presence polling.

        Raises CameraUnavailable (or CameraAcquisitionTimeout) after moving the
        session to failed and releasing resources.
        """
        self._transition(CaptureEvent.START)
        self._cancel_event = asyncio.Event()

        try:
            self.active_constraints = await self._acquire_camera()
        except _SessionCancelled:
            # The device may have opened just as cancel() ran
            if self.frame_source is not None:
                self.frame_source.release()
            return self.session
        except CameraUnavailable as e:
            logger.warning(f"Camera unavailable for {self.session.owner_id}: {e}")
            self._finish(CaptureEvent.ERROR, error=e, message=e.user_message)
            raise
        except BaseException:
            self.cancel()
            raise

        self._transition(CaptureEvent.CAMERA_READY)
        self._poll_task = asyncio.ensure_future(self._poll_presence())
        return self.session

    async def _acquire_camera(self) -> CameraConstraints:
        if self.frame_source is None:
            raise CameraUnavailable(CameraFailureReason.NO_MEDIA_API)

        last_error: Optional[CameraUnavailable] = None
        for constraints in self.constraint_ladder:
            try:
                await self._run_cancellable(self.frame_source.acquire(constraints),
                                            timeout=self.acquire_timeout)
                logger.info(f"Camera ready with constraints: {constraints.describe()}")
                return constraints
            except asyncio.TimeoutError:
                raise CameraAcquisitionTimeout(self.acquire_timeout)
            except CameraUnavailable as e:
                logger.info(f"Constraint failed, trying next: {constraints.describe()} ({e})")
                last_error = e
            except PermissionError as e:
                logger.info(f"Constraint failed, trying next: {constraints.describe()} ({e})")
                last_error = CameraUnavailable(CameraFailureReason.PERMISSION_DENIED, str(e))
            except OSError as e:
                logger.info(f"Constraint failed, trying next: {constraints.describe()} ({e})")
                last_error = CameraUnavailable(CameraFailureReason.UNKNOWN, str(e))

        raise last_error or CameraUnavailable(CameraFailureReason.UNKNOWN,
                                              "Unable to access camera with any settings")

    async def _poll_presence(self):
        while not self.state.is_terminal:
            await asyncio.sleep(self.poll_interval)
            if self.state is CaptureState.STREAMING:
                self.tick()

    def tick(self) -> bool:
        """
        Sample the current frame for face presence.
        Synchronous; a no-op outside the streaming state.
        """
        if self.state is not CaptureState.STREAMING:
            return self.session.face_present

        self._transition(CaptureEvent.TICK)
        try:
            frame = self.frame_source.next_frame()
            if frame is not None:
                self.session.face_present = self.presence_detector.is_present(frame)
        except Exception as e:
            logger.warning(f"Presence sample failed: {e}")
            self.session.face_present = False
        self._transition(CaptureEvent.PRESENCE_SAMPLED)
        return self.session.face_present

    async def wait_for_face(self, timeout: Optional[float] = None) -> bool:
        """Wait until the presence heuristic reports a face, the session ends, or timeout."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self.state in (CaptureState.STREAMING, CaptureState.FACE_DETECTING):
            if self.session.face_present:
                return True
            if deadline is not None and loop.time() >= deadline:
                return False
            try:
                await self._run_cancellable(asyncio.sleep(self.poll_interval))
            except _SessionCancelled:
                return False
        return False

    async def capture(self) -> CaptureOutcome:
        """
        Commit: run the countdown, grab one frame, then enroll or verify.

        Raises CaptureNotReady unless streaming with a face in frame. Every
        other problem ends the session (failed or cancelled) and is reported
        in the returned outcome.
        """
        if self.state is not CaptureState.STREAMING or not self.session.face_present:
            raise CaptureNotReady(f"Cannot capture in state {self.state.value} "
                                  f"(face_present={self.session.face_present})")

        self._transition(CaptureEvent.COMMIT)
        try:
            for remaining in range(self.countdown_from, 0, -1):
                self.session.countdown = remaining
                self._transition(CaptureEvent.COUNTDOWN_TICK)
                await self._run_cancellable(asyncio.sleep(self.countdown_step))
            self.session.countdown = None

            frame = self.frame_source.next_frame()
            self._transition(CaptureEvent.CAPTURE)
        except _SessionCancelled:
            return self._outcome
        except BaseException:
            self.cancel()
            raise

        return self._process(frame)

    def _process(self, frame) -> CaptureOutcome:
        owner_id = self.session.owner_id

        if frame is None:
            error = CameraUnavailable(CameraFailureReason.INTERRUPTED, "No frame available at capture time")
            return self._finish(CaptureEvent.ERROR, error=error, message=error.user_message)

        try:
            if self.session.mode is CaptureMode.ENROLL:
                template = self.verifier.enroll(owner_id, frame)
                return self._finish(CaptureEvent.ACCEPT, success=True, template=template,
                                    message="Your facial biometrics have been securely stored.")

            result = self.verifier.verify(owner_id, frame)
        except NoTemplateRegistered as e:
            return self._finish(CaptureEvent.ERROR, error=e,
                                message="No facial data registered for this user.")
        except LengthMismatch as e:
            logger.error(f"Template for {owner_id} is incompatible with the hash configuration: {e}")
            return self._finish(CaptureEvent.ERROR, error=e,
                                message="Stored facial data is incompatible. Please register again.")
        except Exception as e:
            logger.error(f"Face processing error for {owner_id}: {e}", exc_info=True)
            return self._finish(CaptureEvent.ERROR, error=e, message="Failed to process facial data.")

        percent = round(result.score * 100)
        if result.success:
            return self._finish(CaptureEvent.ACCEPT, success=True, score=result.score,
                                message=f"Identity confirmed ({percent}% match).")
        return self._finish(CaptureEvent.REJECT, score=result.score,
                            message=f"Face verification failed ({percent}% match). Please try again.")

    def cancel(self) -> Optional[CaptureOutcome]:
        """Cancel immediately: stop polling, release the camera, end in cancelled."""
        if self.state.is_terminal:
            return self._outcome

        if self._cancel_event is not None:
            self._cancel_event.set()
        logger.info(f"Capture cancelled for {self.session.owner_id} in state {self.state.value}")
        return self._finish(CaptureEvent.CANCEL, message="Capture cancelled.")

    async def close(self):
        """Tear the session down and wait for the polling task to stop."""
        self.cancel()
        task = self._poll_task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def __aenter__(self) -> "BiometricCaptureController":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False
