"""
Object Tracking
================

Frame-to-frame identity association for detected objects.

Each new detection inherits the identity of the nearest same-label
detection from the previous frame, provided their centers are closer
than a pixel tolerance. Association is greedy and first-come: several
new objects may take the same previous identity.

This module provides:
- ObjectTracker: Nearest-neighbour identity tracker
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from loguru import logger

from .detection import DetectedObject


__all__ = ["ObjectTracker"]


@dataclass
class ObjectTracker:
    """
    Nearest-neighbour identity tracker.

    Use track() for a pure association between two frames, or update()
    to track against the previous call's output.

    Example:
        >>> tracker = ObjectTracker()
        >>> tracked = tracker.update(detector.detect(frame))
        >>> tracked_next = tracker.update(detector.detect(next_frame))
    """

    pixel_tolerance: float = 100.0
    enabled: bool = True

    _previous: list[DetectedObject] = field(default_factory=list, init=False, repr=False)

    def track(
        self,
        new_objects: Sequence[DetectedObject],
        previous_objects: Sequence[DetectedObject],
        pixel_tolerance: float | None = None,
    ) -> list[DetectedObject]:
        """
        Carry identities from previous_objects over to new_objects.

        Args:
            new_objects: Current frame detections (fresh identities)
            previous_objects: Tracked objects of the previous frame
            pixel_tolerance: Overrides the tracker's tolerance

        Returns:
            New objects, re-identified where a match was found
        """
        if not self.enabled or not previous_objects:
            return list(new_objects)

        tolerance = self.pixel_tolerance if pixel_tolerance is None else pixel_tolerance

        tracked = []
        for obj in new_objects:
            best: DetectedObject | None = None
            best_distance = tolerance
            for prev in previous_objects:
                if prev.label != obj.label:
                    continue
                distance = obj.distance_to(prev)
                if distance < best_distance:
                    best = prev
                    best_distance = distance

            tracked.append(obj if best is None else obj.with_id(best.id))

        return tracked

    def update(self, new_objects: Sequence[DetectedObject]) -> list[DetectedObject]:
        """Track against the stored previous frame and store the result."""
        tracked = self.track(new_objects, self._previous)
        self._previous = tracked
        return tracked

    def reset(self) -> None:
        """Forget the previous frame."""
        self._previous = []
        logger.debug("Object tracker reset")

    @property
    def previous(self) -> list[DetectedObject]:
        """Objects stored from the last update() call."""
        return list(self._previous)
