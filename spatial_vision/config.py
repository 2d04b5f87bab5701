"""
Vision Pipeline Configuration
==============================

Immutable configuration objects for the frame-processing pipeline.
Map coordinates are in meters (map units); image coordinates in pixels.

This module provides:
- Resolution: Type-safe resolution representation
- QualityPreset: Predefined quality/speed tradeoffs
- NightVisionSettings: Night-vision filter chain settings
- DepthParams, DetectionParams, MorphologyParams, MappingParams: Per-stage parameters
- VisionConfig: Main configuration with validation and serialization
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import NamedTuple, Self

import yaml


__all__ = [
    "Resolution",
    "QualityPreset",
    "NightVisionSettings",
    "DepthParams",
    "DetectionParams",
    "MorphologyParams",
    "MappingParams",
    "VisionConfig",
]


class Resolution(NamedTuple):
    """Type-safe resolution representation."""

    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"

    @classmethod
    def parse(cls, s: str) -> Resolution:
        """Parse 'WxH' string to Resolution."""
        w, h = s.lower().split("x")
        return cls(int(w), int(h))


class QualityPreset(Enum):
    """Predefined quality/performance tradeoffs."""

    FAST = auto()  # Sparse sampling, small map
    BALANCED = auto()  # Good tradeoff for most use cases
    QUALITY = auto()  # Dense sampling, larger map


@dataclass(frozen=True, slots=True)
class NightVisionSettings:
    """
    Settings for the night-vision filter chain.

    Defaults are the low-light preset; use NightVisionSettings.neutral()
    for settings under which every filter except the thermal remap is
    an exact no-op.

    Attributes:
        brightness: Channel gain (>= 0)
        contrast: Contrast factor around mid-gray 128 (>= 0)
        gamma: Gamma value (> 0); output = 255 * (in/255)^(1/gamma)
        noise_reduction: Blend weight of the 3x3 smoothing kernel (0 to 1)
        edge_enhancement: Sobel magnitude gain (>= 0)
    """

    brightness: float = 1.5
    contrast: float = 1.3
    gamma: float = 0.7
    noise_reduction: float = 0.8
    edge_enhancement: float = 0.4

    def __post_init__(self) -> None:
        if self.brightness < 0:
            raise ValueError(f"brightness must be >= 0: {self.brightness}")
        if self.contrast < 0:
            raise ValueError(f"contrast must be >= 0: {self.contrast}")
        if self.gamma <= 0:
            raise ValueError(f"gamma must be positive: {self.gamma}")
        if not 0.0 <= self.noise_reduction <= 1.0:
            raise ValueError(
                f"noise_reduction must be in [0, 1]: {self.noise_reduction}"
            )
        if self.edge_enhancement < 0:
            raise ValueError(
                f"edge_enhancement must be >= 0: {self.edge_enhancement}"
            )

    @classmethod
    def neutral(cls) -> Self:
        """Settings under which gain/contrast/gamma/denoise/edges are identity."""
        return cls(
            brightness=1.0,
            contrast=1.0,
            gamma=1.0,
            noise_reduction=0.0,
            edge_enhancement=0.0,
        )

    def updated(self, **changes: float) -> NightVisionSettings:
        """Return a copy with some settings replaced (validated again)."""
        values = self.to_dict()
        values.update(changes)
        return NightVisionSettings(**values)

    def to_dict(self) -> dict:
        return {
            "brightness": self.brightness,
            "contrast": self.contrast,
            "gamma": self.gamma,
            "noise_reduction": self.noise_reduction,
            "edge_enhancement": self.edge_enhancement,
        }


class DepthParams(NamedTuple):
    """Sampled monocular depth estimation parameters.

    Attributes:
        stride: Sampling step in pixels along each axis
        contrast_radius: Half-size of the local contrast window
        luminance_weight: Weight of normalized luminance in the depth value
        contrast_weight: Weight of local contrast in the depth value
        noise_amplitude: Upper bound of the stochastic perturbation (0 = off)
        min_confidence: Lower bound of the confidence range (upper bound is 1)
    """

    stride: int = 20
    contrast_radius: int = 5
    luminance_weight: float = 0.7
    contrast_weight: float = 0.3
    noise_amplitude: float = 0.1
    min_confidence: float = 0.6

    @classmethod
    def for_preset(cls, preset: QualityPreset) -> DepthParams:
        """Get depth sampling parameters for a quality preset."""
        match preset:
            case QualityPreset.FAST:
                return cls(stride=40, contrast_radius=3)
            case QualityPreset.QUALITY:
                return cls(stride=10, contrast_radius=7)
            case _:  # BALANCED
                return cls()


class DetectionParams(NamedTuple):
    """Detection, filtering and tracking parameters.

    Attributes:
        confidence_threshold: Detections below this are dropped
        max_objects: Maximum detections kept per frame
        min_interval_s: Detector throttle; calls closer than this return []
        enable_tracking: Carry identities across frames
        pixel_tolerance: Max center distance for identity association
    """

    confidence_threshold: float = 0.5
    max_objects: int = 20
    min_interval_s: float = 0.1
    enable_tracking: bool = True
    pixel_tolerance: float = 100.0


class MorphologyParams(NamedTuple):
    """Morphology heuristics.

    Attributes:
        pixel_to_meter: Image-plane scale used for width/height extents
        depth_scale: Amplification of the sampled depth range
        mesh_depth_scale: Depth scale used for mesh vertices
    """

    pixel_to_meter: float = 0.001
    depth_scale: float = 2.0
    mesh_depth_scale: float = 10.0


class MappingParams(NamedTuple):
    """Spatial mapping engine parameters (distances in map units).

    Attributes:
        motion_scale: Scale applied to external motion hints
        max_trajectory: Trajectory sliding window length
        dedup_radius: Points closer than this are merged
        cluster_threshold: Neighbour distance for landmark clustering
        cluster_fanout: Max further neighbours absorbed per absorbed point
        min_cluster_size: Smallest cluster promoted to a landmark
        landmark_dedup_radius: Min distance between landmark centroids
        max_landmarks: Landmark cap (highest confidence kept)
        max_point_age_s: Points older than this are pruned
        min_point_confidence: Points at or below this are pruned
        max_points: Point cap (highest confidence kept)
        floor_offset: Height below the camera that counts as floor
        max_floor_points: Points reported per floor boundary
        min_floor_points: A floor boundary needs more points than this
    """

    motion_scale: float = 0.01
    max_trajectory: int = 1000
    dedup_radius: float = 0.05
    cluster_threshold: float = 0.1
    cluster_fanout: int = 3
    min_cluster_size: int = 10
    landmark_dedup_radius: float = 0.2
    max_landmarks: int = 50
    max_point_age_s: float = 30.0
    min_point_confidence: float = 0.3
    max_points: int = 10_000
    floor_offset: float = 0.5
    max_floor_points: int = 100
    min_floor_points: int = 10

    @classmethod
    def for_preset(cls, preset: QualityPreset) -> MappingParams:
        """Get mapping parameters for a quality preset."""
        match preset:
            case QualityPreset.FAST:
                return cls(max_points=5_000, max_trajectory=500)
            case QualityPreset.QUALITY:
                return cls(dedup_radius=0.03, max_points=20_000)
            case _:  # BALANCED
                return cls()


@dataclass(frozen=True, slots=True)
class VisionConfig:
    """
    Immutable configuration for the frame-processing pipeline.

    Use VisionConfig.for_preset() for common configurations, or
    VisionConfig.from_yaml() to load a saved one.

    Attributes:
        resolution: Expected frame dimensions (used by frame sources)
        fps: Nominal frame rate of the driving loop
        night_vision_enabled: Run the night-vision filter chain
        mapping_enabled: Feed depth samples into the mapping session
        night_vision: Filter chain settings
        depth: Depth sampling parameters
        detection: Detection/tracking parameters
        morphology: Morphology heuristics
        mapping: Mapping engine parameters

    Example:
        >>> config = VisionConfig.for_preset(QualityPreset.FAST)
        >>> print(f"Sampling every {config.depth.stride}px")
    """

    resolution: Resolution = field(default_factory=lambda: Resolution(640, 480))
    fps: float = 30.0
    night_vision_enabled: bool = False
    mapping_enabled: bool = True
    night_vision: NightVisionSettings = field(default_factory=NightVisionSettings)
    depth: DepthParams = field(default_factory=DepthParams)
    detection: DetectionParams = field(default_factory=DetectionParams)
    morphology: MorphologyParams = field(default_factory=MorphologyParams)
    mapping: MappingParams = field(default_factory=MappingParams)

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.resolution.width <= 0 or self.resolution.height <= 0:
            raise ValueError(f"Invalid resolution: {self.resolution}")

        if self.depth.stride <= 0:
            raise ValueError(f"Depth stride must be positive: {self.depth.stride}")
        if self.depth.contrast_radius < 0:
            raise ValueError("contrast_radius must be >= 0")
        if not 0.0 <= self.depth.min_confidence <= 1.0:
            raise ValueError("min_confidence must be in [0, 1]")

        if not 0.0 <= self.detection.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be in [0, 1]")
        if self.detection.max_objects < 0:
            raise ValueError("max_objects must be >= 0")
        if self.detection.pixel_tolerance < 0:
            raise ValueError("pixel_tolerance must be >= 0")

        if self.mapping.dedup_radius <= 0 or self.mapping.cluster_threshold <= 0:
            raise ValueError("Mapping radii must be positive")
        if (
            self.mapping.max_points <= 0
            or self.mapping.max_landmarks <= 0
            or self.mapping.max_trajectory <= 0
        ):
            raise ValueError("Mapping caps must be positive")

    @property
    def width(self) -> int:
        """Frame width in pixels."""
        return self.resolution.width

    @property
    def height(self) -> int:
        """Frame height in pixels."""
        return self.resolution.height

    @classmethod
    def for_preset(
        cls,
        preset: QualityPreset,
        resolution: Resolution = Resolution(640, 480),
        night_vision_enabled: bool = False,
    ) -> Self:
        """Create configuration with optimized parameters for a preset."""
        return cls(
            resolution=resolution,
            night_vision_enabled=night_vision_enabled,
            depth=DepthParams.for_preset(preset),
            mapping=MappingParams.for_preset(preset),
        )

    def to_dict(self) -> dict:
        """Serialize to dictionary (for JSON/YAML storage)."""
        return {
            "resolution": [self.resolution.width, self.resolution.height],
            "fps": self.fps,
            "night_vision_enabled": self.night_vision_enabled,
            "mapping_enabled": self.mapping_enabled,
            "night_vision": self.night_vision.to_dict(),
            "depth": self.depth._asdict(),
            "detection": self.detection._asdict(),
            "morphology": self.morphology._asdict(),
            "mapping": self.mapping._asdict(),
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """
        Create configuration from dictionary.

        Missing sections and keys fall back to defaults; unknown keys
        inside a section raise TypeError.

        Args:
            data: Dictionary with configuration values (from to_dict())

        Returns:
            VisionConfig instance
        """
        resolution = Resolution(*data.get("resolution", (640, 480)))

        return cls(
            resolution=resolution,
            fps=data.get("fps", 30.0),
            night_vision_enabled=data.get("night_vision_enabled", False),
            mapping_enabled=data.get("mapping_enabled", True),
            night_vision=NightVisionSettings(**data.get("night_vision", {})),
            depth=DepthParams(**data.get("depth", {})),
            detection=DetectionParams(**data.get("detection", {})),
            morphology=MorphologyParams(**data.get("morphology", {})),
            mapping=MappingParams(**data.get("mapping", {})),
        )

    @classmethod
    def from_json(cls, json_str: str) -> Self:
        """Create configuration from JSON string (from to_json())."""
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML file

        Returns:
            VisionConfig instance

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Invalid config file format: {path}")

        return cls.from_dict(data)

    def save_yaml(self, path: str | Path) -> None:
        """
        Save configuration to a YAML file.

        Args:
            path: Path to save YAML file (will create parent dirs)
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
