# sentinelmind/services/perceptual_hash.py
"""
Perceptual hash for captured video frames.

The frame is downsampled to a small square, every `stride`-th pixel (raster
order) is reduced to the mean of its RGB channels and thresholded into one
bit. Visually similar frames give signatures that agree in most positions;
the hash is not collision resistant and reacts to lighting and pose.
"""

import logging
import math

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

DEFAULT_RESOLUTION = 32
DEFAULT_STRIDE = 4
DEFAULT_THRESHOLD = 128


def to_rgb_array(frame) -> np.ndarray:
    """Coerce a greyscale, RGB or RGBA buffer to an H x W x 3 uint8 array."""
    arr = np.asarray(frame)
    if arr.size == 0:
        raise ValueError("Empty frame")
    if arr.ndim == 2:
        arr = np.stack([arr, arr, arr], axis=-1)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"Expected an H x W x 3 or H x W x 4 frame, got shape {arr.shape}")
    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    return arr[:, :, :3]


class PerceptualHashGenerator:
    def __init__(self, resolution: int = DEFAULT_RESOLUTION,
                 stride: int = DEFAULT_STRIDE,
                 threshold: int = DEFAULT_THRESHOLD):
        if resolution < 1 or stride < 1:
            raise ValueError("resolution and stride must be positive")
        self.resolution = resolution
        self.stride = stride
        self.threshold = threshold

    @property
    def signature_length(self) -> int:
        """Bits per signature; constant for a given configuration."""
        return math.ceil(self.resolution * self.resolution / self.stride)

    def downsample(self, frame) -> np.ndarray:
        rgb = to_rgb_array(frame)
        size = (self.resolution, self.resolution)
        image = Image.fromarray(np.ascontiguousarray(rgb))
        if image.size != size:
            image = image.resize(size, Image.Resampling.BILINEAR)
        return np.asarray(image, dtype=np.uint8)

    def hash(self, frame) -> str:
        """Binary signature ('0'/'1' string) of signature_length bits."""
        small = self.downsample(frame)
        samples = small.reshape(-1, 3)[::self.stride].astype(np.float64)
        luminance = samples.mean(axis=1)
        bits = luminance > self.threshold
        signature = ''.join('1' if bit else '0' for bit in bits)
        logger.debug(f"Generated {len(signature)}-bit signature ({int(bits.sum())} set)")
        return signature
