#!/usr/bin/env python3
"""
Spatial Vision - Headless Mapping Demo
=======================================

Runs the full frame pipeline (night vision, depth, detection, tracking,
morphology, mapping) over a synthetic scene or a video file and logs a
periodic summary.

Usage:
    python main.py
    python main.py --frames 300 --resolution 320x240 --night-vision
    python main.py --video walkthrough.mp4 --export map.json
    python main.py --analysis-export analysis.json
    python main.py --config config.yaml --seed 7 --log-level DEBUG
"""

from __future__ import annotations

import argparse
import signal
import sys
import time
from dataclasses import dataclass, field, replace
from pathlib import Path

import numpy as np
from loguru import logger

from spatial_vision import (
    BaseFrameSource,
    DepthStats,
    FrameResult,
    Resolution,
    SyntheticFrameSource,
    VideoFileSource,
    VisionConfig,
    VisionPipeline,
)


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class DemoConfig:
    """Demo application configuration."""

    frames: int = 120
    resolution: Resolution = field(default_factory=lambda: Resolution(640, 480))
    video: Path | None = None
    night_vision: bool = False
    mapping: bool = True
    tracking: bool = True
    config_path: Path | None = None
    export_path: Path | None = None
    analysis_path: Path | None = None
    seed: int | None = None
    log_level: str = "INFO"
    summary_every: int = 30

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> DemoConfig:
        """Create from parsed arguments."""
        return cls(
            frames=args.frames,
            resolution=Resolution.parse(args.resolution),
            video=Path(args.video) if args.video else None,
            night_vision=args.night_vision,
            mapping=not args.no_mapping,
            tracking=not args.no_tracking,
            config_path=Path(args.config) if args.config else None,
            export_path=Path(args.export) if args.export else None,
            analysis_path=Path(args.analysis_export) if args.analysis_export else None,
            seed=args.seed,
            log_level=args.log_level.upper(),
        )

    def vision_config(self) -> VisionConfig:
        """Pipeline configuration: YAML file (if any) overridden by flags."""
        base = (
            VisionConfig.from_yaml(self.config_path)
            if self.config_path
            else VisionConfig(resolution=self.resolution)
        )
        return replace(
            base,
            night_vision_enabled=base.night_vision_enabled or self.night_vision,
            mapping_enabled=base.mapping_enabled and self.mapping,
            detection=base.detection._replace(
                enable_tracking=base.detection.enable_tracking and self.tracking
            ),
        )


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Spatial Vision Mapping Demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--frames", "-n", type=int, default=120, help="Frames to process (default: 120)"
    )
    parser.add_argument(
        "--resolution", "-r", type=str, default="640x480", help="Resolution WxH"
    )
    parser.add_argument(
        "--video", "-v", type=str, default=None, help="Read frames from a video file"
    )
    parser.add_argument(
        "--night-vision", action="store_true", help="Enable the night-vision filter chain"
    )
    parser.add_argument(
        "--no-mapping", action="store_true", help="Disable spatial mapping"
    )
    parser.add_argument(
        "--no-tracking", action="store_true", help="Disable identity tracking"
    )
    parser.add_argument(
        "--config", "-c", type=str, default=None, help="YAML configuration file"
    )
    parser.add_argument(
        "--export", "-o", type=str, default=None, help="Write the map export JSON here"
    )
    parser.add_argument(
        "--analysis-export",
        type=str,
        default=None,
        help="Write the latest frame analysis JSON here (mesh included)",
    )
    parser.add_argument(
        "--seed", type=int, default=None, help="Random seed for reproducible runs"
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO", help="Log level (DEBUG, INFO, ...)"
    )

    return parser.parse_args()


def setup_logging(level: str) -> None:
    """Route loguru output to stderr at the requested level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | {message}",
    )


# ============================================================================
# Demo
# ============================================================================


class MappingDemo:
    """Drives the pipeline over a frame source."""

    def __init__(self, config: DemoConfig) -> None:
        self.config = config
        self.source: BaseFrameSource | None = None
        self.pipeline: VisionPipeline | None = None
        self.running = True
        self.processed = 0
        self.last_result: FrameResult | None = None

    def setup(self) -> None:
        """Initialize source and pipeline."""
        cfg = self.config
        vision = cfg.vision_config()
        logger.info("Spatial Vision demo ({} frames)", cfg.frames)

        logger.info("[1/2] Initializing frame source...")
        if cfg.video is not None:
            try:
                self.source = VideoFileSource(cfg.video, vision.resolution, loop=True)
                logger.info("Using video source: {}", self.source.get_info())
            except RuntimeError as e:
                logger.warning("Failed to open video: {}", e)
                logger.warning("Falling back to synthetic frames...")

        if self.source is None:
            dim = 0.35 if vision.night_vision_enabled else 1.0
            self.source = SyntheticFrameSource(vision.resolution, dim=dim)
            logger.info("Using synthetic source: {}", self.source.get_info())

        logger.info("[2/2] Initializing pipeline...")
        rng = np.random.default_rng(cfg.seed)
        self.pipeline = VisionPipeline(vision, rng=rng)
        logger.info(
            "Night vision: {} | Mapping: {} | Tracking: {} | Stride: {}px",
            "ON" if vision.night_vision_enabled else "OFF",
            "ON" if vision.mapping_enabled else "OFF",
            "ON" if vision.detection.enable_tracking else "OFF",
            vision.depth.stride,
        )
        if vision.mapping_enabled:
            self.pipeline.start_mapping()

    def run(self) -> None:
        """Process frames until done or interrupted."""
        assert self.source is not None and self.pipeline is not None
        frame_interval = 1.0 / self.pipeline.config.fps

        for frame in self.source.frames(limit=self.config.frames):
            if not self.running:
                logger.info("Interrupted")
                break

            started = time.perf_counter()
            result = self.pipeline.process(frame)
            self.processed += 1
            self.last_result = result

            if result.errors:
                logger.warning("Tick {} stage errors: {}", result.index, result.errors)
            if self.processed % self.config.summary_every == 0:
                self._log_summary(result)

            # Pace to the nominal frame rate
            remaining = frame_interval - (time.perf_counter() - started)
            if remaining > 0:
                time.sleep(remaining)

    def _log_summary(self, result: FrameResult) -> None:
        assert self.pipeline is not None
        stats: DepthStats = result.depth_stats
        logger.info("[FRAME {}] {}", result.index, result.summary())
        logger.info("[DEPTH STATS]\n{}", stats.format_verbose())
        logger.info(
            "[DETECTION] fps={} processing={}ms confidence={}",
            result.performance.fps,
            result.performance.processing_time_ms,
            result.confidence.to_dict(),
        )

        for obj in result.objects[:5]:
            profile = result.morphology.get(obj.id)
            shape = profile.shape.value if profile else "-"
            cx, cy = obj.center
            logger.info(
                "  {} {} @ ({:.0f},{:.0f}) conf={:.2f} shape={}",
                obj.id,
                obj.label.upper(),
                cx,
                cy,
                obj.confidence,
                shape,
            )

        if result.map_snapshot is not None:
            session = self.pipeline.session
            logger.info("[MAP] {} | pose {}", session.statistics, session.mapper.pose)

    def _write_analysis(self, path: Path) -> None:
        """Reconstruct the mesh of the last tick and save the analysis export."""
        assert self.pipeline is not None
        if self.last_result is not None:
            mesh = self.pipeline.reconstruct_mesh(self.last_result)
            logger.info("Mesh: {} vertices, {} faces", mesh.vertex_count, mesh.face_count)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.pipeline.export_analysis_json())
        logger.info("Saved analysis export: {}", path)

    def cleanup(self) -> None:
        """Write the export and release resources."""
        if self.pipeline is not None and self.config.export_path is not None:
            path = self.config.export_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.pipeline.session.export_json())
            logger.info("Saved map export: {}", path)

        if self.pipeline is not None and self.config.analysis_path is not None:
            self._write_analysis(self.config.analysis_path)

        if self.source is not None:
            self.source.release()
        logger.info("Done ({} frames processed)", self.processed)


# ============================================================================
# Entry Point
# ============================================================================


def main() -> None:
    """Main entry point."""
    args = parse_args()
    config = DemoConfig.from_args(args)
    setup_logging(config.log_level)

    demo = MappingDemo(config)

    # Handle SIGINT gracefully
    def signal_handler(sig, frame):
        demo.running = False

    signal.signal(signal.SIGINT, signal_handler)

    try:
        demo.setup()
        demo.run()
    finally:
        demo.cleanup()


if __name__ == "__main__":
    main()
