# sentinelmind/services/errors.py
"""
Error taxonomy for the detection engine.

Everything user-facing derives from EngineError and is recovered at the
operation boundary (scanner, capture controller, HTTP route). LengthMismatch
sits outside that hierarchy: it signals a configuration bug, not
something the user can fix.
"""

from enum import Enum
from typing import Optional


class EngineError(Exception):
    """Base class for recoverable engine errors"""


class CameraFailureReason(str, Enum):
    NO_MEDIA_API = "no_media_api"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    IN_USE = "in_use"
    INTERRUPTED = "interrupted"
    BLOCKED = "blocked"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


CAMERA_MESSAGES = {
    CameraFailureReason.NO_MEDIA_API: "Camera API not available on this device.",
    CameraFailureReason.PERMISSION_DENIED: "Camera access denied. Please grant camera permissions and try again.",
    CameraFailureReason.NOT_FOUND: "No camera found. Please connect a camera and try again.",
    CameraFailureReason.IN_USE: "Camera is in use by another application. Please close other apps using the camera.",
    CameraFailureReason.INTERRUPTED: "Camera access was interrupted. Please try again.",
    CameraFailureReason.BLOCKED: "Camera access blocked for security reasons. Please check your settings.",
    CameraFailureReason.TIMEOUT: "Camera did not become ready in time. Please try again.",
    CameraFailureReason.UNKNOWN: "Unable to access camera.",
}


class CameraUnavailable(EngineError):
    """Camera could not be acquired (no API, denied, busy, missing...)"""

    def __init__(self, reason: CameraFailureReason = CameraFailureReason.UNKNOWN,
                 detail: Optional[str] = None):
        self.reason = CameraFailureReason(reason)
        self.detail = detail
        super().__init__(detail or self.user_message)

    @property
    def user_message(self) -> str:
        return CAMERA_MESSAGES[self.reason]


class CameraAcquisitionTimeout(CameraUnavailable):
    """Device never reached a ready state"""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(CameraFailureReason.TIMEOUT, f"Camera not ready after {timeout:.1f}s")


class NoTemplateRegistered(EngineError):
    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"No facial data registered for owner '{owner_id}'")


class UnparseableInput(EngineError):
    def __init__(self, value: str, detail: str = "unparseable input"):
        self.value = value
        self.detail = detail
        super().__init__(f"{detail}: {value!r}")


class CaptureNotReady(EngineError):
    """Capture requested before the session is streaming with a face in frame"""


class InvalidTransition(Exception):
    """Capture state machine asked to perform an illegal transition"""

    def __init__(self, state, event):
        self.state = state
        self.event = event
        super().__init__(f"Illegal transition: {getattr(event, 'value', event)} "
                         f"from state {getattr(state, 'value', state)}")


class LengthMismatch(ValueError):
    """Signatures produced by different generator configurations"""

    def __init__(self, length_a: int, length_b: int):
        self.length_a = length_a
        self.length_b = length_b
        super().__init__(f"Signature length mismatch: {length_a} != {length_b}")
