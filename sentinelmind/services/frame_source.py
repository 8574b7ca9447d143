# sentinelmind/services/frame_source.py
"""
Camera / frame acquisition behind a small capability interface.

The capture controller only needs to acquire a device under some
constraints, pull the current frame on demand, and release the device.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np

from .errors import CameraFailureReason, CameraUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraConstraints:
    facing_mode: Optional[str] = None   # "user" = front camera
    width: Optional[int] = None         # ideal width, best effort
    height: Optional[int] = None

    def describe(self) -> str:
        parts = []
        if self.facing_mode:
            parts.append(f"facing={self.facing_mode}")
        if self.width and self.height:
            parts.append(f"{self.width}x{self.height}")
        return ", ".join(parts) or "any device"


# Progressively relaxed: ideal resolution -> facing mode only -> any device
DEFAULT_CONSTRAINT_LADDER: Tuple[CameraConstraints, ...] = (
    CameraConstraints(facing_mode="user", width=640, height=480),
    CameraConstraints(facing_mode="user"),
    CameraConstraints(),
)


class FrameSource(Protocol):
    async def acquire(self, constraints: CameraConstraints) -> None:
        """Open the device; raise CameraUnavailable if these constraints cannot be met."""
        ...

    def next_frame(self) -> Optional[np.ndarray]:
        """Current frame as an H x W x 3 RGB array, or None if none is ready yet."""
        ...

    def release(self) -> None:
        """Stop the stream; must be safe to call more than once."""
        ...


class _PendingOpen:
    """
    Hands a device opened in a worker thread back to its caller, or releases
    it if the caller stopped waiting before or after the open completed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._abandoned = False
        self._capture = None

    def run(self, open_fn, *args):
        capture = open_fn(*args)
        with self._lock:
            if self._abandoned:
                capture.release()
                logger.info("Released camera opened after acquisition was abandoned")
                return None
            self._capture = capture
        return capture

    def abandon(self) -> None:
        with self._lock:
            self._abandoned = True
            capture, self._capture = self._capture, None
        if capture is not None:
            capture.release()
            logger.info("Released camera opened after acquisition was abandoned")


class OpenCVFrameSource:
    """Local webcam via OpenCV. Blocking device calls run in a worker thread."""

    def __init__(self, device_index: int = 0, max_devices: int = 4):
        self.device_index = device_index
        self.max_devices = max_devices
        self._capture = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def _open(self, index: int, constraints: CameraConstraints):
        capture = cv2.VideoCapture(index)
        if not capture.isOpened():
            capture.release()
            raise CameraUnavailable(CameraFailureReason.NOT_FOUND, f"No camera at index {index}")

        if constraints.width and constraints.height:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)

        # A device that opens but never delivers a frame is held by someone else
        ok, _ = capture.read()
        if not ok:
            capture.release()
            raise CameraUnavailable(CameraFailureReason.IN_USE, f"Camera {index} returned no frames")
        return capture

    def _open_any(self, constraints: CameraConstraints):
        if constraints.facing_mode or constraints.width:
            return self._open(self.device_index, constraints)

        last_error = None
        for index in range(self.max_devices):
            try:
                return self._open(index, constraints)
            except CameraUnavailable as e:
                last_error = e
        raise last_error or CameraUnavailable(CameraFailureReason.NOT_FOUND)

    async def acquire(self, constraints: CameraConstraints) -> None:
        self.release()
        pending = _PendingOpen()
        try:
            capture = await asyncio.to_thread(pending.run, self._open_any, constraints)
        except asyncio.CancelledError:
            # The worker thread keeps going; whatever it opens must not leak
            pending.abandon()
            raise
        self._capture = capture
        logger.info(f"Camera acquired ({constraints.describe()})")

    def next_frame(self) -> Optional[np.ndarray]:
        if self._capture is None:
            return None
        ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("Camera released")


class StaticFrameSource:
    """
    Replays supplied frames; the last frame repeats once the list is exhausted.
    Used for uploaded snapshots and for exercising the controller without hardware.
    """

    def __init__(self, frames: Sequence[np.ndarray]):
        self._frames: List[np.ndarray] = list(frames)
        self._position = 0
        self.acquired = False
        self.release_count = 0

    async def acquire(self, constraints: CameraConstraints) -> None:
        if not self._frames:
            raise CameraUnavailable(CameraFailureReason.NOT_FOUND, "No frames supplied")
        self.acquired = True

    def next_frame(self) -> Optional[np.ndarray]:
        if not self.acquired:
            return None
        frame = self._frames[min(self._position, len(self._frames) - 1)]
        self._position += 1
        return frame

    def release(self) -> None:
        if self.acquired:
            self.release_count += 1
        self.acquired = False
