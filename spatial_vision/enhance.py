"""
Night-Vision Frame Enhancement
===============================

Pixel-level filter chain for low-light frames, ending in a false-color
"thermal" remap.

Pipeline (strictly ordered):
    brightness -> contrast -> gamma -> denoise -> edge enhancement -> thermal

Every stage works on (H, W, 4) RGBA uint8 arrays, leaves alpha untouched,
and rounds/clamps its RGB output to [0, 255] before the next stage reads
it. Denoise and edge enhancement only touch interior pixels; the one-pixel
border passes through unchanged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np
from loguru import logger

from .config import NightVisionSettings
from .frame import Frame, luminance

if TYPE_CHECKING:
    import numpy.typing as npt


__all__ = [
    "DENOISE_KERNEL",
    "adjust_brightness",
    "adjust_contrast",
    "adjust_gamma",
    "denoise",
    "enhance_edges",
    "thermal_remap",
    "FrameEnhancer",
]


DENOISE_KERNEL = np.array(
    [
        [1, 2, 1],
        [2, 4, 2],
        [1, 2, 1],
    ],
    dtype=np.float64,
) / 16.0


def _with_rgb(pixels: npt.NDArray, rgb: npt.NDArray) -> npt.NDArray:
    """Round, clamp and write RGB values into a copy of pixels."""
    out = pixels.copy()
    out[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    return out


def adjust_brightness(pixels: npt.NDArray, factor: float) -> npt.NDArray:
    """Scale RGB channels by factor."""
    return _with_rgb(pixels, pixels[..., :3].astype(np.float64) * factor)


def adjust_contrast(pixels: npt.NDArray, factor: float) -> npt.NDArray:
    """
    Stretch RGB channels around mid-gray 128.

    A factor of 1.0 is the identity; the curve is
    f = 259(c + 255) / (255(259 - c)) with c = (factor - 1) * 255.
    Past the pole at c = 259 the gain turns negative; at the pole itself
    channels saturate away from 128.
    """
    c = (factor - 1.0) * 255.0
    rgb = pixels[..., :3].astype(np.float64)
    if abs(259.0 - c) < 1e-9:
        return _with_rgb(pixels, 128.0 + np.sign(rgb - 128.0) * 255.0)
    gain = (259.0 * (c + 255.0)) / (255.0 * (259.0 - c))
    return _with_rgb(pixels, gain * (rgb - 128.0) + 128.0)


def adjust_gamma(pixels: npt.NDArray, gamma: float) -> npt.NDArray:
    """Apply out = 255 * (in / 255) ** (1 / gamma)."""
    rgb = pixels[..., :3].astype(np.float64)
    return _with_rgb(pixels, 255.0 * np.power(rgb / 255.0, 1.0 / gamma))


def denoise(pixels: npt.NDArray, strength: float) -> npt.NDArray:
    """
    Blend interior pixels with a 3x3 Gaussian-like smoothing.

    Args:
        pixels: RGBA array
        strength: 0 keeps the input, 1 uses the smoothed value

    Returns:
        New RGBA array
    """
    h, w = pixels.shape[:2]
    if h < 3 or w < 3:
        return pixels.copy()

    rgb = pixels[..., :3].astype(np.float64)
    smoothed = cv2.filter2D(rgb, cv2.CV_64F, DENOISE_KERNEL)

    blended = rgb.copy()
    blended[1:-1, 1:-1] = (
        rgb[1:-1, 1:-1] * (1.0 - strength) + smoothed[1:-1, 1:-1] * strength
    )
    return _with_rgb(pixels, blended)


def enhance_edges(pixels: npt.NDArray, strength: float) -> npt.NDArray:
    """
    Add the Sobel gradient magnitude of luminance to each RGB channel.

    Args:
        pixels: RGBA array
        strength: Gain applied to the gradient magnitude

    Returns:
        New RGBA array
    """
    h, w = pixels.shape[:2]
    if h < 3 or w < 3:
        return pixels.copy()

    luma = luminance(pixels)
    gx = cv2.Sobel(luma, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(luma, cv2.CV_64F, 0, 1, ksize=3)
    magnitude = np.hypot(gx, gy)

    rgb = pixels[..., :3].astype(np.float64)
    boosted = rgb.copy()
    boosted[1:-1, 1:-1] += (magnitude[1:-1, 1:-1] * strength)[..., np.newaxis]
    return _with_rgb(pixels, boosted)


def thermal_remap(pixels: npt.NDArray) -> npt.NDArray:
    """
    Map luminance through a four-segment false-color palette.

    Segments of normalized luminance n:
        [0, 0.25)    blue -> cyan
        [0.25, 0.5)  cyan -> green
        [0.5, 0.75)  green -> yellow
        [0.75, 1]    yellow -> red
    """
    n = luminance(pixels) / 255.0

    seg1 = n < 0.25
    seg2 = (n >= 0.25) & (n < 0.5)
    seg3 = (n >= 0.5) & (n < 0.75)
    seg4 = n >= 0.75

    red = np.select(
        [seg1, seg2, seg3, seg4],
        [0.0, 0.0, np.floor((n - 0.5) * 4 * 255), 255.0],
    )
    green = np.select(
        [seg1, seg2, seg3, seg4],
        [
            np.floor(n * 4 * 100),
            np.floor(255 - (n - 0.25) * 4 * 155),
            255.0,
            np.floor(255 - (n - 0.75) * 4 * 255),
        ],
    )
    blue = np.select(
        [seg1, seg2, seg3, seg4],
        [
            np.floor(255 - n * 4 * 100),
            np.floor((n - 0.25) * 4 * 255),
            0.0,
            0.0,
        ],
    )
    return _with_rgb(pixels, np.stack([red, green, blue], axis=-1))


class FrameEnhancer:
    """
    Stateless night-vision enhancer.

    Example:
        >>> enhancer = FrameEnhancer()
        >>> enhanced = enhancer.enhance(frame)
        >>> identity_but_thermal = enhancer.enhance(frame, NightVisionSettings.neutral())
    """

    __slots__ = ("_settings",)

    def __init__(self, settings: NightVisionSettings | None = None) -> None:
        self._settings = settings or NightVisionSettings()

    @property
    def settings(self) -> NightVisionSettings:
        """Default settings used when enhance() gets none."""
        return self._settings

    def enhance(
        self,
        frame: Frame,
        settings: NightVisionSettings | None = None,
    ) -> Frame:
        """
        Run the full filter chain.

        Args:
            frame: Input frame (not modified)
            settings: Overrides the enhancer's default settings

        Returns:
            New enhanced frame
        """
        s = settings or self._settings

        pixels = adjust_brightness(frame.pixels, s.brightness)
        pixels = adjust_contrast(pixels, s.contrast)
        pixels = adjust_gamma(pixels, s.gamma)
        pixels = denoise(pixels, s.noise_reduction)
        pixels = enhance_edges(pixels, s.edge_enhancement)
        pixels = thermal_remap(pixels)

        logger.debug(
            "Enhanced {}x{} frame (brightness={}, gamma={})",
            frame.width,
            frame.height,
            s.brightness,
            s.gamma,
        )
        return Frame(pixels)
