"""
Object Morphology
==================

Coarse 3D shape descriptors for detected objects, derived from the depth
samples that fall inside each bounding box.

Extents:
    width  = bbox.width  * pixel_to_meter
    height = bbox.height * pixel_to_meter
    depth  = (max_depth - min_depth) * depth_scale

Shape classification uses the bbox aspect ratio first, then the depth
variation across the box.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np

from .config import MorphologyParams
from .depth import DepthSample, samples_to_array
from .detection import DetectedObject


__all__ = [
    "ShapeClass",
    "MorphologyProfile",
    "MorphologyAnalyzer",
]


class ShapeClass(Enum):
    """Coarse object shape."""

    RECTANGULAR = "rectangular"  # Wide box
    VERTICAL = "vertical"  # Tall box
    FLAT = "flat"  # Little depth variation
    IRREGULAR = "irregular"  # Strong depth variation
    CUBOID = "cuboid"
    UNDEFINED = "undefined"  # No depth data


@dataclass(frozen=True, slots=True)
class MorphologyProfile:
    """
    Shape descriptor of one object.

    Attributes:
        object_id: Identity of the described object
        volume: width * height * depth
        surface_area: Box surface area
        width: Horizontal extent
        height: Vertical extent
        depth: Depth extent
        shape: Shape class
        complexity: Mean absolute depth step between samples (0 to 1)
        symmetry: Left/right mean depth agreement (0 to 1)
    """

    object_id: str
    volume: float
    surface_area: float
    width: float
    height: float
    depth: float
    shape: ShapeClass
    complexity: float
    symmetry: float

    @classmethod
    def undefined(cls, object_id: str) -> MorphologyProfile:
        """Profile for an object without depth data."""
        return cls(
            object_id=object_id,
            volume=0.0,
            surface_area=0.0,
            width=0.0,
            height=0.0,
            depth=0.0,
            shape=ShapeClass.UNDEFINED,
            complexity=0.0,
            symmetry=0.0,
        )

    def to_dict(self) -> dict:
        return {
            "object_id": self.object_id,
            "volume": self.volume,
            "surface_area": self.surface_area,
            "dimensions": {
                "width": self.width,
                "height": self.height,
                "depth": self.depth,
            },
            "shape": self.shape.value,
            "complexity": self.complexity,
            "symmetry": self.symmetry,
        }


class MorphologyAnalyzer:
    """
    Stateless morphology analyzer.

    Example:
        >>> analyzer = MorphologyAnalyzer()
        >>> profiles = analyzer.analyze_all(objects, samples)
        >>> profiles[objects[0].id].shape
        <ShapeClass.FLAT: 'flat'>
    """

    __slots__ = ("_params",)

    def __init__(self, params: MorphologyParams | None = None) -> None:
        self._params = params or MorphologyParams()

    @property
    def params(self) -> MorphologyParams:
        return self._params

    def analyze(
        self,
        obj: DetectedObject,
        samples: Sequence[DepthSample],
    ) -> MorphologyProfile:
        """
        Build the shape profile of one object.

        Args:
            obj: Detected object
            samples: Depth samples of the whole frame

        Returns:
            Profile; shape UNDEFINED when no sample lies inside the bbox
        """
        inside = self._samples_inside(obj, samples)
        if len(inside) == 0:
            return MorphologyProfile.undefined(obj.id)

        p = self._params
        depths = inside[:, 2]
        depth_range = float(depths.max() - depths.min())

        width = obj.bbox.width * p.pixel_to_meter
        height = obj.bbox.height * p.pixel_to_meter
        depth = depth_range * p.depth_scale

        volume = width * height * depth
        surface_area = 2 * (width * height + width * depth + height * depth)

        return MorphologyProfile(
            object_id=obj.id,
            volume=volume,
            surface_area=surface_area,
            width=width,
            height=height,
            depth=depth,
            shape=self.classify_shape(obj, depths),
            complexity=self.complexity(depths),
            symmetry=self.symmetry(obj, inside),
        )

    def analyze_all(
        self,
        objects: Sequence[DetectedObject],
        samples: Sequence[DepthSample],
    ) -> dict[str, MorphologyProfile]:
        """Analyze every object; later objects win on identity collisions."""
        return {obj.id: self.analyze(obj, samples) for obj in objects}

    @staticmethod
    def classify_shape(obj: DetectedObject, depths: np.ndarray) -> ShapeClass:
        """Classify by aspect ratio, then by depth variation."""
        bbox = obj.bbox
        if bbox.height > 0:
            aspect = bbox.width / bbox.height
        else:
            # Degenerate box: NaN skips both aspect rules
            aspect = math.inf if bbox.width > 0 else math.nan
        variation = float(depths.max() - depths.min()) if len(depths) >= 2 else 0.0

        if aspect > 1.5:
            return ShapeClass.RECTANGULAR
        if aspect < 0.7:
            return ShapeClass.VERTICAL
        if variation < 0.1:
            return ShapeClass.FLAT
        if variation > 0.5:
            return ShapeClass.IRREGULAR
        return ShapeClass.CUBOID

    @staticmethod
    def complexity(depths: np.ndarray) -> float:
        """Sum of absolute consecutive depth steps over sample count, capped at 1."""
        n = len(depths)
        if n < 2:
            return 0.0
        return min(1.0, float(np.sum(np.abs(np.diff(depths)))) / n)

    @staticmethod
    def symmetry(obj: DetectedObject, inside: np.ndarray) -> float:
        """1 - |mean(left) - mean(right)| around the bbox center, floored at 0."""
        cx = obj.center[0]
        xs = inside[:, 0]
        left = inside[xs < cx, 2]
        right = inside[xs > cx, 2]
        if len(left) == 0 or len(right) == 0:
            return 0.0
        return max(0.0, 1.0 - abs(float(left.mean()) - float(right.mean())))

    @staticmethod
    def _samples_inside(
        obj: DetectedObject,
        samples: Sequence[DepthSample],
    ) -> np.ndarray:
        """(K, 4) rows of the samples within the bbox, edges included."""
        data = samples_to_array(samples)
        if len(data) == 0:
            return data
        x1, y1, x2, y2 = obj.bbox.corners
        mask = (
            (data[:, 0] >= x1)
            & (data[:, 0] <= x2)
            & (data[:, 1] >= y1)
            & (data[:, 1] <= y2)
        )
        return data[mask]
