"""
Image Frames
=============

Immutable RGBA frame container shared by every pipeline stage.

Pixels are stored row-major as a (height, width, 4) uint8 array in
red, green, blue, alpha order. The array is flagged read-only; filters
always return a new Frame.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import cv2
import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt


__all__ = [
    "LUMA_WEIGHTS",
    "Frame",
    "luminance",
]


# ITU-R BT.601 weights for R, G, B
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def luminance(pixels: npt.NDArray) -> npt.NDArray:
    """
    Per-pixel luminance on the 0-255 scale.

    Args:
        pixels: (H, W, 3) or (H, W, 4) array in RGB(A) order

    Returns:
        (H, W) float64 array
    """
    rgb = pixels[..., :3].astype(np.float64)
    wr, wg, wb = LUMA_WEIGHTS
    return wr * rgb[..., 0] + wg * rgb[..., 1] + wb * rgb[..., 2]


@dataclass(frozen=True, slots=True, eq=False)
class Frame:
    """
    Immutable RGBA image.

    Attributes:
        pixels: (height, width, 4) uint8 array, read-only

    Example:
        >>> frame = Frame.blank(640, 480, color=(20, 20, 20))
        >>> frame.width, frame.height
        (640, 480)
    """

    pixels: npt.NDArray

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(
                f"Frame pixels must have shape (H, W, 4), got {pixels.shape}"
            )
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("Frame must have non-zero width and height")

        pixels = np.clip(pixels, 0, 255).astype(np.uint8, copy=True)
        pixels.flags.writeable = False
        object.__setattr__(self, "pixels", pixels)

    @property
    def width(self) -> int:
        """Frame width in pixels."""
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        """Frame height in pixels."""
        return int(self.pixels.shape[0])

    @property
    def shape(self) -> tuple[int, int]:
        """(height, width), numpy order."""
        return self.height, self.width

    def contains(self, x: int, y: int) -> bool:
        """Check whether a pixel coordinate lies inside the frame."""
        return 0 <= x < self.width and 0 <= y < self.height

    def rgb_at(self, x: int, y: int) -> tuple[int, int, int]:
        """RGB at a pixel, or (0, 0, 0) outside the frame."""
        if not self.contains(x, y):
            return (0, 0, 0)
        r, g, b = self.pixels[y, x, :3]
        return (int(r), int(g), int(b))

    def luminance(self) -> npt.NDArray:
        """Luminance map on the 0-255 scale."""
        return luminance(self.pixels)

    def with_pixels(self, pixels: npt.NDArray) -> Frame:
        """Return a new frame holding the given buffer."""
        return Frame(pixels)

    # Conversions

    @classmethod
    def from_bgr(cls, image: npt.NDArray) -> Frame:
        """Create from an OpenCV BGR (or grayscale) image."""
        if image.ndim == 2:
            rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
        else:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
        return cls(rgba)

    @classmethod
    def from_rgb(cls, image: npt.NDArray, alpha: int = 255) -> Frame:
        """Create from an (H, W, 3) RGB image with constant alpha."""
        h, w = image.shape[:2]
        rgba = np.empty((h, w, 4), dtype=np.uint8)
        rgba[..., :3] = image
        rgba[..., 3] = alpha
        return cls(rgba)

    @classmethod
    def blank(
        cls,
        width: int,
        height: int,
        color: tuple[int, int, int] = (0, 0, 0),
    ) -> Frame:
        """Create a uniformly colored opaque frame."""
        rgba = np.empty((height, width, 4), dtype=np.uint8)
        rgba[..., :3] = color
        rgba[..., 3] = 255
        return cls(rgba)

    def to_bgr(self) -> npt.NDArray:
        """Convert to an OpenCV BGR image (writable copy)."""
        return cv2.cvtColor(np.ascontiguousarray(self.pixels), cv2.COLOR_RGBA2BGR)
