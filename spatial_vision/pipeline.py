"""
Vision Pipeline
================

Per-tick orchestration of every processing stage.

Stage order:
    enhance (optional) -> depth -> detect -> track -> morphology -> mapping

Each stage runs behind its own error boundary: a failing stage is logged,
its message is recorded in FrameResult.errors and it yields an empty
result, so later stages still run on whatever is available.
"""

from __future__ import annotations

import json
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, TypeVar

import numpy as np
from loguru import logger

from .config import VisionConfig
from .depth import DepthEstimator, DepthSample, DepthStats
from .detection import (
    ConfidenceStats,
    DetectedObject,
    Detector,
    SimulatedDetector,
    filter_detections,
)
from .enhance import FrameEnhancer
from .frame import Frame
from .mapping import MapSnapshot, SpatialMapper, Vec3
from .mesh import Mesh3D, MeshReconstructor
from .morphology import MorphologyAnalyzer, MorphologyProfile
from .session import MappingSession
from .tracking import ObjectTracker


__all__ = ["FrameResult", "PerformanceMetrics", "PerformanceMonitor", "VisionPipeline"]


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class PerformanceMetrics:
    """
    Throughput figures after a tick.

    Attributes:
        fps: Mean rate over the recent tick intervals (rounded)
        processing_time_ms: Stage time of the latest tick (rounded)
        frame_count: Ticks counted so far
    """

    fps: int = 0
    processing_time_ms: int = 0
    frame_count: int = 0

    def to_dict(self) -> dict:
        return {
            "fps": self.fps,
            "processing_time_ms": self.processing_time_ms,
            "frame_count": self.frame_count,
        }


class PerformanceMonitor:
    """
    Rolling frame-rate tracker.

    A tick that arrives with no time elapsed since the previous one is
    not counted and leaves the metrics as they were. The first tick
    counts but has no interval to contribute.
    """

    __slots__ = ("_rates", "_last_time", "_frame_count", "_total_ms", "_metrics")

    def __init__(self, window: int = 30) -> None:
        self._rates: deque[float] = deque(maxlen=window)
        self._last_time: float | None = None
        self._frame_count = 0
        self._total_ms = 0.0
        self._metrics = PerformanceMetrics()

    def record(self, now: float, processing_ms: float) -> PerformanceMetrics:
        if self._last_time is not None:
            elapsed = now - self._last_time
            if elapsed <= 0:
                return self._metrics
            self._rates.append(1.0 / elapsed)

        self._last_time = now
        self._frame_count += 1
        self._total_ms += processing_ms

        fps = round(sum(self._rates) / len(self._rates)) if self._rates else 0
        self._metrics = PerformanceMetrics(fps, round(processing_ms), self._frame_count)
        return self._metrics

    @property
    def metrics(self) -> PerformanceMetrics:
        return self._metrics

    @property
    def average_processing_ms(self) -> float:
        return self._total_ms / self._frame_count if self._frame_count else 0.0

    def reset(self) -> None:
        self._rates.clear()
        self._last_time = None
        self._frame_count = 0
        self._total_ms = 0.0
        self._metrics = PerformanceMetrics()


@dataclass(frozen=True, slots=True, eq=False)
class FrameResult:
    """
    Outputs of one pipeline tick.

    Attributes:
        index: Tick number (starting at 1)
        frame: Enhanced frame when night vision is on, else the input
        depth_samples: Sampled depth field
        depth_stats: Summary of depth_samples
        objects: Tracked detections
        morphology: Shape profile per object id
        map_snapshot: Map after this tick (None when mapping is disabled)
        timings_ms: Wall time per stage
        errors: Stage name -> error message for failed stages
        confidence: Confidence spread of objects
        performance: Throughput after this tick
    """

    index: int
    frame: Frame
    depth_samples: list[DepthSample]
    depth_stats: DepthStats
    objects: list[DetectedObject]
    morphology: dict[str, MorphologyProfile]
    map_snapshot: MapSnapshot | None
    timings_ms: dict[str, float] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    confidence: ConfidenceStats = field(default_factory=ConfidenceStats)
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def total_ms(self) -> float:
        return sum(self.timings_ms.values())

    def summary(self) -> str:
        """One-line description for logs."""
        points = self.map_snapshot.point_count if self.map_snapshot is not None else 0
        labels = ", ".join(obj.label for obj in self.objects) or "-"
        text = (
            f"#{self.index} depth={self.depth_stats.mean_depth:.2f} "
            f"objects=[{labels}] points={points} ({self.total_ms:.1f}ms)"
        )
        if self.errors:
            text += f" errors={sorted(self.errors)}"
        return text


class VisionPipeline:
    """
    Frame-processing pipeline.

    Stateful parts (tracker, mapping session, performance monitor and the
    latest analysis) live here; everything else is stateless per call.

    Example:
        >>> pipeline = VisionPipeline(VisionConfig(), rng=np.random.default_rng(42))
        >>> pipeline.start_mapping()
        >>> for frame in source.frames():
        ...     result = pipeline.process(frame)
        ...     print(result.summary())
        >>> data = pipeline.export()
    """

    def __init__(
        self,
        config: VisionConfig | None = None,
        detector: Detector | None = None,
        rng: np.random.Generator | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize pipeline.

        Args:
            config: Pipeline configuration
            detector: Detection backend (SimulatedDetector if None)
            rng: Random generator shared by the stochastic stages
            clock: Time source in seconds for the detector throttle, map
                and frame rate
        """
        self._config = config or VisionConfig()
        cfg = self._config
        rng = rng if rng is not None else np.random.default_rng()

        self._enhancer = FrameEnhancer(cfg.night_vision)
        self._depth = DepthEstimator(cfg.depth, rng=rng)
        self._detector = detector or SimulatedDetector(
            min_interval_s=cfg.detection.min_interval_s, rng=rng, clock=clock
        )
        self._tracker = ObjectTracker(
            pixel_tolerance=cfg.detection.pixel_tolerance,
            enabled=cfg.detection.enable_tracking,
        )
        self._morphology = MorphologyAnalyzer(cfg.morphology)
        self._mesh = MeshReconstructor(cfg.morphology)
        self._session = MappingSession(SpatialMapper(cfg.mapping, clock=clock, rng=rng))
        self._performance = PerformanceMonitor()
        self._clock = clock
        self._motion_hint: Vec3 | None = None
        self._tick = 0
        self._last_result: FrameResult | None = None
        self._last_mesh: Mesh3D | None = None
        self._mesh_ms = 0.0

    @property
    def config(self) -> VisionConfig:
        return self._config

    @property
    def session(self) -> MappingSession:
        return self._session

    @property
    def tracker(self) -> ObjectTracker:
        return self._tracker

    @property
    def performance(self) -> PerformanceMetrics:
        return self._performance.metrics

    # Lifecycle

    def start_mapping(self) -> None:
        self._session.start()

    def stop_mapping(self) -> None:
        self._session.stop()

    def reset(self) -> None:
        """Clear tracker memory, the map and the analysis state."""
        self._tracker.reset()
        self._session.reset()
        self._performance.reset()
        self._tick = 0
        self._last_result = None
        self._last_mesh = None
        self._mesh_ms = 0.0
        logger.info("Pipeline reset")

    def export(self) -> dict:
        return self._session.export()

    # Processing

    def process(self, frame: Frame, motion_hint: Vec3 | None = None) -> FrameResult:
        """
        Run one tick.

        Args:
            frame: Raw input frame
            motion_hint: 3-axis motion estimate for the mapper

        Returns:
            FrameResult (never raises for stage failures)
        """
        self._tick += 1
        cfg = self._config
        timings: dict[str, float] = {}
        errors: dict[str, str] = {}

        def run(stage: str, fn: Callable[[], T], fallback: T) -> T:
            start = time.perf_counter()
            try:
                return fn()
            except Exception as e:
                logger.exception("Stage '{}' failed on tick {}", stage, self._tick)
                errors[stage] = str(e) or type(e).__name__
                return fallback
            finally:
                timings[stage] = (time.perf_counter() - start) * 1000.0

        if cfg.night_vision_enabled:
            frame = run("enhance", lambda: self._enhancer.enhance(frame), frame)

        samples = run("depth", lambda: self._depth.estimate(frame), [])
        stats = DepthStats.from_samples(samples)

        detections = run(
            "detect",
            lambda: filter_detections(
                self._detector.detect(frame),
                cfg.detection.confidence_threshold,
                cfg.detection.max_objects,
            ),
            [],
        )
        objects = run("track", lambda: self._tracker.update(detections), detections)
        morphology = run(
            "morphology", lambda: self._morphology.analyze_all(objects, samples), {}
        )

        snapshot = None
        if cfg.mapping_enabled:
            hint = motion_hint if motion_hint is not None else self._motion_hint
            self._session.set_motion_hint(hint)
            # Only a tick the session actually ran can report its error
            mapped = self._session.active
            snapshot = run(
                "mapping",
                lambda: self._session.process_frame(frame, samples),
                self._session.snapshot,
            )
            if mapped and self._session.error is not None:
                errors["mapping"] = self._session.error

        performance = self._performance.record(self._clock(), sum(timings.values()))

        result = FrameResult(
            index=self._tick,
            frame=frame,
            depth_samples=samples,
            depth_stats=stats,
            objects=objects,
            morphology=morphology,
            map_snapshot=snapshot,
            timings_ms=timings,
            errors=errors,
            confidence=ConfidenceStats.from_objects(objects),
            performance=performance,
        )
        self._last_result = result
        return result

    def set_motion_hint(self, hint: Vec3 | None) -> None:
        """Default motion hint for ticks that do not pass one."""
        self._motion_hint = hint

    def reconstruct_mesh(self, result: FrameResult) -> Mesh3D:
        """Surface mesh of a tick's depth field (kept for export_analysis)."""
        start = time.perf_counter()
        mesh = self._mesh.reconstruct(
            result.depth_samples, result.frame.width, result.frame.height
        )
        self._mesh_ms = (time.perf_counter() - start) * 1000.0
        self._last_mesh = mesh
        return mesh

    # Analysis export

    def export_analysis(self) -> dict:
        """
        Serializable summary of the latest tick's analysis.

        Covers the depth field size, morphology by object id, the last
        reconstructed mesh, stage timings, throughput, detection
        confidence and the night-vision settings.
        """
        result = self._last_result
        timings = dict(result.timings_ms) if result is not None else {}
        if self._last_mesh is not None:
            timings["mesh"] = self._mesh_ms

        data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "tick": result.index if result is not None else 0,
            "depth_point_count": len(result.depth_samples) if result is not None else 0,
            "morphology": (
                {oid: p.to_dict() for oid, p in result.morphology.items()}
                if result is not None
                else {}
            ),
            "mesh": self._last_mesh.summary() if self._last_mesh is not None else None,
            "timings_ms": timings,
            "performance": self._performance.metrics.to_dict(),
            "confidence": (
                result.confidence.to_dict()
                if result is not None
                else ConfidenceStats().to_dict()
            ),
            "night_vision": {
                "enabled": self._config.night_vision_enabled,
                "settings": self._config.night_vision.to_dict(),
            },
        }

        logger.info(
            "Exported analysis: tick {}, {} depth points, {} objects",
            data["tick"],
            data["depth_point_count"],
            len(data["morphology"]),
        )
        return data

    def export_analysis_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.export_analysis(), indent=indent)
