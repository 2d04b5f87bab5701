"""
Unit tests for frame capture module.
"""

import cv2
import numpy as np
import pytest

from spatial_vision import (
    FrameSource,
    ObjectShape,
    Resolution,
    SceneObject,
    SyntheticFrameSource,
    VideoFileSource,
)


class TestSceneObject:
    """Tests for SceneObject dataclass."""

    def test_creation(self) -> None:
        obj = SceneObject(x=100, y=50, width=30, height=20, shape=ObjectShape.RECTANGLE)
        assert obj.x == 100
        assert obj.shape is ObjectShape.RECTANGLE

    def test_str_representation(self) -> None:
        assert str(SceneObject(10, 20, 30, 40)) == "circle @ (10,20) 30x40"


class TestSyntheticFrameSource:
    """Tests for SyntheticFrameSource."""

    @pytest.fixture
    def source(self) -> SyntheticFrameSource:
        return SyntheticFrameSource(Resolution(160, 120), num_objects=4)

    def test_satisfies_protocol(self, source: SyntheticFrameSource) -> None:
        assert isinstance(source, FrameSource)

    def test_frame_shape(self, source: SyntheticFrameSource) -> None:
        frame = source.read()
        assert frame.width == 160
        assert frame.height == 120
        assert np.all(frame.pixels[..., 3] == 255)

    def test_objects_created(self, source: SyntheticFrameSource) -> None:
        source.read()
        assert len(source.objects) == 4

    def test_deterministic(self) -> None:
        a = SyntheticFrameSource(Resolution(64, 48)).render(7)
        b = SyntheticFrameSource(Resolution(64, 48)).render(7)
        assert np.array_equal(a, b)

    def test_different_frames_differ(self, source: SyntheticFrameSource) -> None:
        first = source.read()
        second = source.read()
        assert not np.array_equal(first.pixels, second.pixels)
        assert source.frame_count == 2

    def test_dim(self) -> None:
        bright = SyntheticFrameSource(Resolution(64, 48)).render(0)
        dark = SyntheticFrameSource(Resolution(64, 48), dim=0.3).render(0)
        assert dark.mean() < bright.mean() * 0.4

    def test_invalid_dim(self) -> None:
        with pytest.raises(ValueError):
            SyntheticFrameSource(dim=1.5)

    def test_max_frames(self) -> None:
        source = SyntheticFrameSource(Resolution(32, 24), max_frames=3)
        assert len(list(source.frames())) == 3
        assert source.read() is None

    def test_frames_limit(self, source: SyntheticFrameSource) -> None:
        assert len(list(source.frames(limit=5))) == 5

    def test_context_manager(self) -> None:
        with SyntheticFrameSource(Resolution(32, 24)) as source:
            assert source.read() is not None

    def test_get_info(self, source: SyntheticFrameSource) -> None:
        assert "160x120" in source.get_info()


class TestVideoFileSource:
    """Tests for VideoFileSource."""

    @pytest.fixture
    def video_path(self, tmp_path):
        path = tmp_path / "clip.avi"
        writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
        if not writer.isOpened():
            pytest.skip("MJPG encoder not available")
        for i in range(5):
            image = np.full((48, 64, 3), i * 40, dtype=np.uint8)
            writer.write(image)
        writer.release()
        return path

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(RuntimeError, match="not found"):
            VideoFileSource(tmp_path / "missing.mp4")

    def test_reads_until_end(self, video_path) -> None:
        with VideoFileSource(video_path) as source:
            frames = list(source.frames())
            assert source.resolution == Resolution(64, 48)
        assert len(frames) == 5
        assert frames[0].width == 64

    def test_resize(self, video_path) -> None:
        with VideoFileSource(video_path, resolution=Resolution(32, 24)) as source:
            frame = source.read()
        assert frame.shape == (24, 32)

    def test_loop(self, video_path) -> None:
        with VideoFileSource(video_path, loop=True) as source:
            assert len(list(source.frames(limit=12))) == 12

    def test_read_after_release(self, video_path) -> None:
        source = VideoFileSource(video_path)
        source.release()
        assert not source.is_opened
        with pytest.raises(RuntimeError):
            source.read()
