"""
Monocular Depth Estimation
===========================

Sparse depth field from a single frame, sampled on a fixed grid.

Theory:
    depth = clamp(luminance * 0.7 + local_contrast * 0.3 + noise, 0, 1)

Where luminance is normalized to [0, 1] and local contrast is the absolute
difference between a sample's luminance and the mean luminance of the
window around it.

NOTE: this is a heuristic monocular proxy, not a calibrated depth sensor.
Values are relative (0 = near, 1 = far) and bright, flat regions read as
"far". Swap in a learned or stereo estimator for metric depth.

This module provides:
- DepthSample: One depth estimate at a pixel
- DepthStats: Summary statistics of a sample set
- DepthEstimator: Grid-sampling estimator with injectable randomness
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

import cv2
import numpy as np
from loguru import logger

from .config import DepthParams
from .frame import Frame

if TYPE_CHECKING:
    import numpy.typing as npt


__all__ = [
    "DepthSample",
    "DepthZone",
    "DepthStats",
    "DepthEstimator",
    "samples_to_array",
]


@dataclass(frozen=True, slots=True)
class DepthSample:
    """
    Depth estimate at one pixel.

    Attributes:
        x: Pixel X coordinate
        y: Pixel Y coordinate
        depth: Relative depth (0.0 = near, 1.0 = far)
        confidence: Estimate confidence (0.0 to 1.0)
    """

    x: int
    y: int
    depth: float
    confidence: float


def samples_to_array(samples: Sequence[DepthSample]) -> npt.NDArray:
    """Stack samples into an (N, 4) float array of [x, y, depth, confidence]."""
    if not samples:
        return np.empty((0, 4), dtype=np.float64)
    return np.array(
        [(s.x, s.y, s.depth, s.confidence) for s in samples], dtype=np.float64
    )


@dataclass(frozen=True, slots=True)
class DepthZone:
    """Depth zone classification for verbose analysis."""

    name: str  # "near", "mid", "far"
    range: tuple[float, float]
    sample_count: int
    percentage: float

    def __str__(self) -> str:
        return f"{self.name.upper()}: {self.percentage:.1f}% ({self.sample_count} samples)"


@dataclass(frozen=True, slots=True)
class DepthStats:
    """Statistics about a set of depth samples.

    Attributes:
        count: Number of samples
        min_depth: Minimum depth
        max_depth: Maximum depth
        mean_depth: Mean depth
        median_depth: Median depth
        mean_confidence: Mean sample confidence
        zones: Depth zone breakdown (near/mid/far)
    """

    count: int
    min_depth: float
    max_depth: float
    mean_depth: float
    median_depth: float
    mean_confidence: float
    zones: tuple[DepthZone, DepthZone, DepthZone] | None = None

    @classmethod
    def from_samples(
        cls,
        samples: Sequence[DepthSample],
        near_threshold: float = 0.33,
        far_threshold: float = 0.66,
    ) -> DepthStats:
        """Compute statistics from depth samples.

        Args:
            samples: Depth samples
            near_threshold: Depth below this is "near" zone
            far_threshold: Depth at or above this is "far" zone
        """
        if not samples:
            empty_zone = DepthZone("empty", (0.0, 0.0), 0, 0.0)
            return cls(
                count=0,
                min_depth=0.0,
                max_depth=0.0,
                mean_depth=0.0,
                median_depth=0.0,
                mean_confidence=0.0,
                zones=(empty_zone, empty_zone, empty_zone),
            )

        data = samples_to_array(samples)
        depths = data[:, 2]
        n = len(depths)

        near_count = int(np.sum(depths < near_threshold))
        far_count = int(np.sum(depths >= far_threshold))
        mid_count = n - near_count - far_count

        zones = (
            DepthZone("near", (0.0, near_threshold), near_count, 100.0 * near_count / n),
            DepthZone("mid", (near_threshold, far_threshold), mid_count, 100.0 * mid_count / n),
            DepthZone("far", (far_threshold, 1.0), far_count, 100.0 * far_count / n),
        )

        return cls(
            count=n,
            min_depth=float(np.min(depths)),
            max_depth=float(np.max(depths)),
            mean_depth=float(np.mean(depths)),
            median_depth=float(np.median(depths)),
            mean_confidence=float(np.mean(data[:, 3])),
            zones=zones,
        )

    def format_verbose(self) -> str:
        """Format stats as multi-line verbose string."""
        lines = [
            f"  Samples: {self.count} | Range: {self.min_depth:.2f} - {self.max_depth:.2f}",
            f"  Mean: {self.mean_depth:.2f} | Median: {self.median_depth:.2f}"
            f" | Confidence: {self.mean_confidence * 100:.0f}%",
        ]
        if self.zones:
            lines.append(f"  Zones: {self.zones[0]} | {self.zones[1]} | {self.zones[2]}")
        return "\n".join(lines)


class DepthEstimator:
    """
    Grid-sampled monocular depth proxy.

    Stateless between calls; the only source of nondeterminism is the
    injected random generator (pass noise_amplitude=0 in the params and
    a seeded rng for fully reproducible output).

    Example:
        >>> estimator = DepthEstimator(rng=np.random.default_rng(0))
        >>> samples = estimator.estimate(frame)
        >>> print(DepthStats.from_samples(samples).format_verbose())
    """

    __slots__ = ("_params", "_rng")

    def __init__(
        self,
        params: DepthParams | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        """
        Initialize depth estimator.

        Args:
            params: Sampling parameters (defaults: stride 20, radius 5)
            rng: Random generator for the noise and confidence terms
        """
        self._params = params or DepthParams()
        self._rng = rng if rng is not None else np.random.default_rng()

    @property
    def params(self) -> DepthParams:
        return self._params

    def estimate(self, frame: Frame) -> list[DepthSample]:
        """
        Estimate depth on the sampling grid.

        Args:
            frame: Input frame

        Returns:
            Samples in row-major order (y outer, x inner)
        """
        p = self._params
        h, w = frame.shape

        luma = frame.luminance() / 255.0
        ys, xs = np.meshgrid(
            np.arange(0, h, p.stride), np.arange(0, w, p.stride), indexing="ij"
        )
        ys = ys.ravel()
        xs = xs.ravel()

        contrast = self._local_contrast(luma, xs, ys, p.contrast_radius)
        center = luma[ys, xs]

        n = len(xs)
        noise = self._rng.random(n) * p.noise_amplitude
        depth = np.clip(
            center * p.luminance_weight + contrast * p.contrast_weight + noise, 0.0, 1.0
        )
        confidence = p.min_confidence + self._rng.random(n) * (1.0 - p.min_confidence)

        logger.debug("Estimated {} depth samples on {}x{} frame", n, w, h)

        return [
            DepthSample(int(x), int(y), float(d), float(c))
            for x, y, d, c in zip(xs, ys, depth, confidence)
        ]

    @staticmethod
    def _local_contrast(
        luma: npt.NDArray,
        xs: npt.NDArray,
        ys: npt.NDArray,
        radius: int,
    ) -> npt.NDArray:
        """|center - window mean| with the window clamped to frame bounds."""
        h, w = luma.shape
        integral = cv2.integral(luma, sdepth=cv2.CV_64F)

        x1 = np.maximum(xs - radius, 0)
        x2 = np.minimum(xs + radius + 1, w)
        y1 = np.maximum(ys - radius, 0)
        y2 = np.minimum(ys + radius + 1, h)

        window_sum = (
            integral[y2, x2] - integral[y1, x2] - integral[y2, x1] + integral[y1, x1]
        )
        window_mean = window_sum / ((x2 - x1) * (y2 - y1))
        return np.abs(luma[ys, xs] - window_mean)
