"""
Frame Sources
==============

Protocol-based interface for frame sources feeding the pipeline.

This module provides:
- FrameSource: Protocol defining the source interface
- BaseFrameSource: Base class with context manager and iteration support
- SceneObject, ObjectShape: Procedural scene description
- SyntheticFrameSource: Animated procedural scene (no hardware needed)
- VideoFileSource: Frames decoded from a video file
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Protocol, runtime_checkable

import cv2
import numpy as np
from loguru import logger

from .config import Resolution
from .frame import Frame

if TYPE_CHECKING:
    import numpy.typing as npt


__all__ = [
    "FrameSource",
    "BaseFrameSource",
    "ObjectShape",
    "SceneObject",
    "SyntheticFrameSource",
    "VideoFileSource",
]


@runtime_checkable
class FrameSource(Protocol):
    """
    Protocol for frame sources.

    Implementations must provide:
    - resolution: Size of produced frames
    - read(): Return the next Frame, or None when exhausted
    - release(): Free resources

    Example:
        >>> with SyntheticFrameSource(Resolution(320, 240)) as source:
        ...     for frame in source.frames(limit=10):
        ...         result = pipeline.process(frame)
    """

    @property
    def resolution(self) -> Resolution:
        """Size of produced frames."""
        ...

    def read(self) -> Frame | None:
        """
        Read the next frame.

        Returns:
            Frame, or None when the source is exhausted

        Raises:
            RuntimeError: If the source fails
        """
        ...

    def release(self) -> None:
        """Release source resources."""
        ...


class BaseFrameSource(AbstractContextManager):
    """
    Base class providing common frame source functionality.

    Concrete implementations should subclass this and implement:
    - read(): The actual frame production
    - release(): Resource cleanup (default: nothing to free)

    Provides:
    - Context manager support (with statement)
    - frames() iteration with an optional limit
    - Frame counting
    """

    __slots__ = ("_resolution", "_frame_count")

    def __init__(self, resolution: Resolution) -> None:
        self._resolution = resolution
        self._frame_count = 0

    @property
    def resolution(self) -> Resolution:
        return self._resolution

    @property
    def frame_count(self) -> int:
        """Frames produced so far."""
        return self._frame_count

    def read(self) -> Frame | None:
        """Read next frame - must be implemented by subclass."""
        raise NotImplementedError

    def release(self) -> None:
        pass

    def frames(self, limit: int | None = None) -> Iterator[Frame]:
        """Yield frames until exhausted or limit frames were produced."""
        produced = 0
        while limit is None or produced < limit:
            frame = self.read()
            if frame is None:
                return
            produced += 1
            yield frame

    def __enter__(self) -> BaseFrameSource:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Context manager exit - ensures release is called."""
        self.release()
        return False


class ObjectShape(Enum):
    """Shape types for scene objects."""

    CIRCLE = auto()
    RECTANGLE = auto()
    ELLIPSE = auto()


@dataclass(frozen=True, slots=True)
class SceneObject:
    """An object drawn into the synthetic scene.

    Attributes:
        x, y: Center position in pixels
        width, height: Bounding dimensions
        shape: Object shape type
        color: RGB color
    """

    x: int
    y: int
    width: int
    height: int
    shape: ObjectShape = ObjectShape.CIRCLE
    color: tuple[int, int, int] = (220, 40, 40)

    def __str__(self) -> str:
        return f"{self.shape.name.lower()} @ ({self.x},{self.y}) {self.width}x{self.height}"


class SyntheticFrameSource(BaseFrameSource):
    """
    Animated procedural scene.

    Draws a textured back wall, a floor with a brightness gradient and a
    handful of moving shapes. Deterministic for a given frame index;
    dim < 1 darkens the scene to exercise night vision.

    Example:
        >>> source = SyntheticFrameSource(Resolution(320, 240), num_objects=4)
        >>> frame = source.read()
    """

    # Shape and RGB color cycled per object
    OBJECT_TYPES = [
        (ObjectShape.CIRCLE, (230, 60, 40)),
        (ObjectShape.RECTANGLE, (60, 200, 80)),
        (ObjectShape.ELLIPSE, (240, 160, 30)),
        (ObjectShape.CIRCLE, (40, 200, 230)),
    ]

    __slots__ = ("_num_objects", "_dim", "_max_frames", "_objects")

    def __init__(
        self,
        resolution: Resolution = Resolution(640, 480),
        num_objects: int = 4,
        dim: float = 1.0,
        max_frames: int | None = None,
    ) -> None:
        """
        Initialize synthetic source.

        Args:
            resolution: Frame size
            num_objects: Number of moving shapes
            dim: Brightness multiplier (0 to 1)
            max_frames: Stop after this many frames (None = endless)
        """
        if not 0.0 <= dim <= 1.0:
            raise ValueError(f"dim must be in [0, 1]: {dim}")
        super().__init__(resolution)
        self._num_objects = num_objects
        self._dim = dim
        self._max_frames = max_frames
        self._objects: list[SceneObject] = []

    @property
    def objects(self) -> list[SceneObject]:
        """Objects drawn in the last frame."""
        return list(self._objects)

    def read(self) -> Frame | None:
        if self._max_frames is not None and self._frame_count >= self._max_frames:
            return None

        image = self.render(self._frame_count)
        self._frame_count += 1
        return Frame.from_rgb(image)

    def render(self, index: int) -> npt.NDArray:
        """Draw frame `index` as an (H, W, 3) RGB image."""
        w, h = self._resolution
        image = self._background(w, h, index)

        self._objects = self._animate_objects(w, h, index)
        for obj in self._objects:
            self._draw_object(image, obj)

        if self._dim < 1.0:
            image = (image.astype(np.float32) * self._dim).astype(np.uint8)
        return image

    @staticmethod
    def _background(w: int, h: int, index: int) -> npt.NDArray:
        """Textured wall on the top quarter, gradient floor below."""
        t = index * 0.05
        xx, yy = np.meshgrid(np.arange(w), np.arange(h))

        # Floor: darker far away (top), brighter near (bottom)
        y_ratio = yy / max(h - 1, 1)
        base = 60.0 + 120.0 * y_ratio

        pattern = np.sin(xx * 0.08 + t) * np.cos(yy * 0.08 + t * 0.7)
        pattern += np.sin(xx * 0.03 - t * 0.5) * np.sin(yy * 0.03 + t * 0.3) * 0.5
        value = base + pattern * 20.0

        wall_height = h // 4
        value[:wall_height, :] = 90.0 + pattern[:wall_height, :] * 10.0

        gray = np.clip(value, 0, 255).astype(np.uint8)
        return cv2.cvtColor(gray, cv2.COLOR_GRAY2RGB)

    def _animate_objects(self, w: int, h: int, index: int) -> list[SceneObject]:
        objects = []
        t = index * 0.02
        for i in range(self._num_objects):
            angle = t + i * (2 * np.pi / max(self._num_objects, 1))
            shape, color = self.OBJECT_TYPES[i % len(self.OBJECT_TYPES)]

            x = int(w * (0.2 + 0.6 * (0.5 + 0.4 * np.cos(angle * 0.3 + i))))
            y = int(h * (0.25 + 0.5 * (0.5 + 0.4 * np.sin(angle * 0.5 + i * 0.7))))

            base_size = min(w, h) * (0.1 + 0.05 * np.sin(t * 0.5 + i))
            match shape:
                case ObjectShape.RECTANGLE:
                    width, height = int(base_size * 1.5), int(base_size * 0.8)
                case ObjectShape.ELLIPSE:
                    width, height = int(base_size * 1.2), int(base_size)
                case _:
                    width = height = int(base_size)

            objects.append(SceneObject(x, y, max(width, 2), max(height, 2), shape, color))
        return objects

    @staticmethod
    def _draw_object(image: npt.NDArray, obj: SceneObject) -> None:
        center = (obj.x, obj.y)
        half = (obj.width // 2, obj.height // 2)
        match obj.shape:
            case ObjectShape.CIRCLE:
                cv2.circle(image, center, min(half), obj.color, thickness=-1)
            case ObjectShape.RECTANGLE:
                cv2.rectangle(
                    image,
                    (obj.x - half[0], obj.y - half[1]),
                    (obj.x + half[0], obj.y + half[1]),
                    obj.color,
                    thickness=-1,
                )
            case ObjectShape.ELLIPSE:
                cv2.ellipse(image, center, half, 0, 0, 360, obj.color, thickness=-1)

    def get_info(self) -> str:
        return (
            f"SyntheticFrameSource(resolution={self._resolution}, "
            f"objects={self._num_objects}, dim={self._dim})"
        )


class VideoFileSource(BaseFrameSource):
    """
    Frames decoded from a video file with OpenCV.

    Frames are resized to the requested resolution when given, otherwise
    the file's native size is used.

    Example:
        >>> with VideoFileSource("walkthrough.mp4") as source:
        ...     for frame in source.frames():
        ...         pipeline.process(frame)
    """

    __slots__ = ("_cap", "_path", "_loop", "_opened")

    def __init__(
        self,
        path: str | Path,
        resolution: Resolution | None = None,
        loop: bool = False,
    ) -> None:
        """
        Open a video file.

        Args:
            path: Video file path
            resolution: Output size (None = native)
            loop: Restart from the first frame at end of file

        Raises:
            RuntimeError: If the file cannot be opened
        """
        self._path = Path(path)
        self._loop = loop
        if not self._path.exists():
            raise RuntimeError(f"Video file not found: {self._path}")

        self._cap = cv2.VideoCapture(str(self._path))
        if not self._cap.isOpened():
            raise RuntimeError(f"Failed to open video file {self._path}")

        native = Resolution(
            int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )
        super().__init__(resolution or native)
        self._opened = True
        logger.info("Opened video {} ({} native)", self._path, native)

    @property
    def is_opened(self) -> bool:
        return self._opened

    @property
    def fps(self) -> float:
        return float(self._cap.get(cv2.CAP_PROP_FPS))

    def read(self) -> Frame | None:
        """
        Decode the next frame.

        Returns:
            Frame, or None at end of file (unless looping)

        Raises:
            RuntimeError: If the source was released
        """
        if not self._opened:
            raise RuntimeError("Video source not opened")

        ret, image = self._cap.read()
        if (not ret or image is None) and self._loop and self._frame_count > 0:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ret, image = self._cap.read()
        if not ret or image is None:
            return None

        target_w, target_h = self._resolution
        if image.shape[:2] != (target_h, target_w):
            image = cv2.resize(image, (target_w, target_h))

        self._frame_count += 1
        return Frame.from_bgr(image)

    def release(self) -> None:
        """Release the decoder."""
        if self._opened:
            self._cap.release()
        self._opened = False

    def get_info(self) -> str:
        return f"VideoFileSource(path={self._path}, resolution={self._resolution})"
