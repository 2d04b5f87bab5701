"""
Object Detection Interface
===========================

Pluggable detection boundary with a fixed output contract.

This module provides:
- BoundingBox: Immutable axis-aligned box with center, area, corners and containment
- DetectedObject: Immutable labeled detection with identity
- Detector: Protocol for detection backends
- SimulatedDetector: Randomized stand-in backend (rate limited)
- ConfidenceStats: Min/average/max confidence of one detection batch
- filter_detections: Confidence threshold + count cap
"""

from __future__ import annotations

import itertools
import math
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Protocol, Sequence

import numpy as np
from loguru import logger

from .frame import Frame


__all__ = [
    "DEFAULT_LABELS",
    "BoundingBox",
    "DetectedObject",
    "Detector",
    "RateLimiter",
    "SimulatedDetector",
    "ConfidenceStats",
    "filter_detections",
]


DEFAULT_LABELS = (
    "person",
    "car",
    "phone",
    "computer",
    "table",
    "chair",
    "bottle",
    "cup",
    "book",
    "pen",
    "keys",
    "glasses",
    "watch",
    "plant",
    "lamp",
    "picture",
    "television",
    "sofa",
)


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """
    Immutable axis-aligned box in frame pixel coordinates.

    Attributes:
        x: Left edge
        y: Top edge
        width: Box width
        height: Box height
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        """Box center (cx, cy)."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        """Box area in pixels."""
        return self.width * self.height

    @property
    def corners(self) -> tuple[float, float, float, float]:
        """Get (x1, y1, x2, y2) corner coordinates."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def contains(self, px: float, py: float) -> bool:
        """Check whether a point lies inside the box (edges included)."""
        return self.x <= px <= self.x + self.width and self.y <= py <= self.y + self.height


@dataclass(frozen=True, slots=True)
class DetectedObject:
    """
    Immutable detection result.

    Attributes:
        id: Identity; fresh per detection, rewritten by the tracker
        label: Class name (e.g., "person", "chair")
        confidence: Detection confidence (0.0 to 1.0)
        bbox: Bounding box
        timestamp: Detection time in seconds
    """

    id: str
    label: str
    confidence: float
    bbox: BoundingBox
    timestamp: float = 0.0

    @property
    def center(self) -> tuple[float, float]:
        """Bounding box center."""
        return self.bbox.center

    @property
    def area(self) -> float:
        """Bounding box area."""
        return self.bbox.area

    def distance_to(self, other: DetectedObject) -> float:
        """Euclidean distance between centers in pixels."""
        (ax, ay), (bx, by) = self.center, other.center
        return math.hypot(ax - bx, ay - by)

    def with_id(self, object_id: str) -> DetectedObject:
        """Return a copy carrying another identity."""
        return replace(self, id=object_id)

    def to_dict(self) -> dict:
        cx, cy = self.center
        return {
            "id": self.id,
            "label": self.label,
            "confidence": self.confidence,
            "bbox": {
                "x": self.bbox.x,
                "y": self.bbox.y,
                "width": self.bbox.width,
                "height": self.bbox.height,
            },
            "center": {"x": cx, "y": cy},
            "area": self.area,
            "timestamp": self.timestamp,
        }


class Detector(Protocol):
    """
    Protocol for object detection backends.

    Implement this with YOLO, SSD, or any other detector. Every call
    assigns fresh identities; an empty list is a valid result.
    """

    def detect(self, frame: Frame) -> list[DetectedObject]:
        """
        Detect objects in a single frame.

        Args:
            frame: RGBA frame

        Returns:
            List of DetectedObject
        """
        ...


@dataclass
class RateLimiter:
    """
    Time-based self-throttle for detector backends.

    acquire() returns False when called again within min_interval_s of
    the last accepted call.
    """

    min_interval_s: float = 0.1
    clock: Callable[[], float] = time.monotonic
    _last: float | None = field(default=None, init=False, repr=False)

    def acquire(self) -> bool:
        now = self.clock()
        if self._last is not None and now - self._last < self.min_interval_s:
            return False
        self._last = now
        return True

    def reset(self) -> None:
        self._last = None


class SimulatedDetector:
    """
    Randomized stand-in detector.

    NOT a real model - yields 2-5 boxes at random positions with labels
    from a fixed vocabulary and confidence in [0.7, 1.0]. Calls within
    min_interval_s of the previous accepted call return [] (modeling a
    rate-limited backend, not an error).

    Example:
        >>> detector = SimulatedDetector(rng=np.random.default_rng(7))
        >>> objects = detector.detect(frame)
    """

    __slots__ = ("_labels", "_rng", "_clock", "_limiter", "_ids")

    def __init__(
        self,
        labels: Sequence[str] = DEFAULT_LABELS,
        min_interval_s: float = 0.1,
        rng: np.random.Generator | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize simulated detector.

        Args:
            labels: Label vocabulary
            min_interval_s: Throttle interval in seconds (0 disables)
            rng: Random generator for boxes, labels and confidences
            clock: Time source in seconds
        """
        if not labels:
            raise ValueError("labels must not be empty")
        self._labels = tuple(labels)
        self._rng = rng if rng is not None else np.random.default_rng()
        self._clock = clock
        self._limiter = RateLimiter(min_interval_s, clock)
        self._ids = itertools.count(1)

    def detect(self, frame: Frame) -> list[DetectedObject]:
        """Generate 2-5 random detections, or [] when throttled."""
        if not self._limiter.acquire():
            logger.debug("Detector throttled, skipping frame")
            return []

        w, h = frame.width, frame.height
        now = self._clock()
        count = int(self._rng.integers(2, 6))

        objects = []
        for _ in range(count):
            x = self._rng.random() * (w * 0.8)
            y = self._rng.random() * (h * 0.8)
            bw = self._rng.random() * (w * 0.3) + w * 0.1
            bh = self._rng.random() * (h * 0.3) + h * 0.1
            label = self._labels[int(self._rng.integers(len(self._labels)))]

            objects.append(
                DetectedObject(
                    id=f"obj_{next(self._ids)}",
                    label=label,
                    confidence=0.7 + self._rng.random() * 0.3,
                    bbox=BoundingBox(x, y, bw, bh),
                    timestamp=now,
                )
            )

        return objects


def filter_detections(
    objects: Sequence[DetectedObject],
    confidence_threshold: float = 0.5,
    max_objects: int = 20,
) -> list[DetectedObject]:
    """Drop low-confidence detections and cap the count (input order kept)."""
    kept = [obj for obj in objects if obj.confidence >= confidence_threshold]
    return kept[:max_objects]


@dataclass(frozen=True, slots=True)
class ConfidenceStats:
    """Confidence spread of one detection batch, rounded to 2 decimals."""

    min: float = 0.0
    average: float = 0.0
    max: float = 0.0

    @classmethod
    def from_objects(cls, objects: Sequence[DetectedObject]) -> ConfidenceStats:
        """All zeros for an empty batch."""
        if not objects:
            return cls()
        values = [obj.confidence for obj in objects]
        return cls(
            min=round(min(values), 2),
            average=round(sum(values) / len(values), 2),
            max=round(max(values), 2),
        )

    def to_dict(self) -> dict:
        return {"min": self.min, "average": self.average, "max": self.max}
