"""
Spatial Vision
==============

Monocular frame processing: depth sampling, object tracking, shape
descriptors, night-vision enhancement and incremental 3D mapping.

Quick Start (Synthetic Frames)::

    from spatial_vision import Resolution, SyntheticFrameSource, VisionConfig, VisionPipeline

    pipeline = VisionPipeline(VisionConfig())
    pipeline.start_mapping()
    with SyntheticFrameSource(Resolution(320, 240)) as source:
        for frame in source.frames(limit=30):
            result = pipeline.process(frame)
            print(result.summary())
    data = pipeline.export()

Single Components::

    from spatial_vision import DepthEstimator, FrameEnhancer, MorphologyAnalyzer

    enhanced = FrameEnhancer().enhance(frame)
    samples = DepthEstimator().estimate(enhanced)
    profile = MorphologyAnalyzer().analyze(obj, samples)

Modules:
    config: Pipeline configuration and per-stage parameters
    frame: Immutable RGBA frame
    capture: Frame source interface, synthetic and video sources
    enhance: Night-vision filter chain
    depth: Grid-sampled monocular depth proxy
    detection: Object detection interface
    tracking: Frame-to-frame identity tracking
    morphology: Object shape descriptors
    mesh: Surface mesh from depth samples
    mapping: Incremental point-cloud mapping engine
    session: Mapping session wrapper and export
    pipeline: Per-tick orchestration
"""

__version__ = "1.0.0"

# Configuration
from .config import (
    Resolution,
    QualityPreset,
    NightVisionSettings,
    DepthParams,
    DetectionParams,
    MorphologyParams,
    MappingParams,
    VisionConfig,
)

# Frames
from .frame import Frame

# Capture
from .capture import (
    FrameSource,
    BaseFrameSource,
    ObjectShape,
    SceneObject,
    SyntheticFrameSource,
    VideoFileSource,
)

# Enhancement
from .enhance import FrameEnhancer

# Depth
from .depth import (
    DepthSample,
    DepthZone,
    DepthStats,
    DepthEstimator,
)

# Detection
from .detection import (
    BoundingBox,
    DetectedObject,
    Detector,
    SimulatedDetector,
    ConfidenceStats,
    filter_detections,
)

# Tracking
from .tracking import ObjectTracker

# Morphology
from .morphology import (
    ShapeClass,
    MorphologyProfile,
    MorphologyAnalyzer,
)

# Mesh
from .mesh import (
    Point3D,
    Mesh3D,
    MeshReconstructor,
)

# Mapping
from .mapping import (
    MapPoint3D,
    Landmark,
    TrajectorySample,
    Trajectory,
    CameraPose,
    Boundary,
    LandmarkSummary,
    MapSnapshot,
    LandmarkClassifier,
    ShapeLandmarkClassifier,
    SpatialMapper,
)

# Session
from .session import (
    MappingStatistics,
    MappingSession,
)

# Pipeline
from .pipeline import (
    FrameResult,
    PerformanceMetrics,
    PerformanceMonitor,
    VisionPipeline,
)

__all__ = [
    # Version
    "__version__",
    # Config
    "Resolution",
    "QualityPreset",
    "NightVisionSettings",
    "DepthParams",
    "DetectionParams",
    "MorphologyParams",
    "MappingParams",
    "VisionConfig",
    # Frames
    "Frame",
    # Capture
    "FrameSource",
    "BaseFrameSource",
    "ObjectShape",
    "SceneObject",
    "SyntheticFrameSource",
    "VideoFileSource",
    # Enhancement
    "FrameEnhancer",
    # Depth
    "DepthSample",
    "DepthZone",
    "DepthStats",
    "DepthEstimator",
    # Detection
    "BoundingBox",
    "DetectedObject",
    "Detector",
    "SimulatedDetector",
    "ConfidenceStats",
    "filter_detections",
    # Tracking
    "ObjectTracker",
    # Morphology
    "ShapeClass",
    "MorphologyProfile",
    "MorphologyAnalyzer",
    # Mesh
    "Point3D",
    "Mesh3D",
    "MeshReconstructor",
    # Mapping
    "MapPoint3D",
    "Landmark",
    "TrajectorySample",
    "Trajectory",
    "CameraPose",
    "Boundary",
    "LandmarkSummary",
    "MapSnapshot",
    "LandmarkClassifier",
    "ShapeLandmarkClassifier",
    "SpatialMapper",
    # Session
    "MappingStatistics",
    "MappingSession",
    # Pipeline
    "FrameResult",
    "PerformanceMetrics",
    "PerformanceMonitor",
    "VisionPipeline",
]
