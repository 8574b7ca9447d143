# sentinelmind/services/face_presence.py

import numpy as np

from .perceptual_hash import to_rgb_array

DEFAULT_MIN_RATIO = 0.05
DEFAULT_MAX_RATIO = 0.6


class FacePresenceDetector:
    """
    Coarse face-presence check based on the share of skin-toned pixels.

    Presence is declared when the ratio lies strictly inside
    (min_ratio, max_ratio): below it there is no face, above it the frame is
    dominated by skin-toned background. Framing guidance only, not identity.
    """

    def __init__(self, min_ratio: float = DEFAULT_MIN_RATIO, max_ratio: float = DEFAULT_MAX_RATIO):
        if not 0.0 <= min_ratio < max_ratio <= 1.0:
            raise ValueError(f"Invalid presence band {min_ratio}..{max_ratio}")
        self.min_ratio = min_ratio
        self.max_ratio = max_ratio

    @staticmethod
    def skin_ratio(frame) -> float:
        rgb = to_rgb_array(frame).astype(np.int16)
        r, g, b = rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2]

        skin = (
            (r > 95) & (g > 40) & (b > 20)
            & (r > g) & (r > b)
            & ((r - g) > 15) & ((r - b) > 15)
        )
        return float(skin.mean())

    def is_present(self, frame) -> bool:
        ratio = self.skin_ratio(frame)
        return self.min_ratio < ratio < self.max_ratio
