"""
Surface Mesh Reconstruction
============================

Triangulated surface built from a sampled depth field.

Each depth sample becomes one vertex via the pinhole model:

    z = depth * depth_scale
    x = (sx - cx) * z / f
    y = (cy - sy) * z / f

with f = 0.5 * width and (cx, cy) the image center. Neighbouring samples
on the sampling grid form two triangles per cell.

This module provides:
- Point3D: 3D position in camera coordinates
- Mesh3D: Vertex/face/normal arrays with texture coordinates
- MeshReconstructor: Depth samples -> Mesh3D
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

import numpy as np
from loguru import logger

from .config import MorphologyParams
from .depth import DepthSample, samples_to_array

if TYPE_CHECKING:
    import numpy.typing as npt


__all__ = ["Point3D", "Mesh3D", "MeshReconstructor"]


@dataclass(frozen=True, slots=True)
class Point3D:
    """3D position in camera coordinates (map units).

    Coordinate system:
    - X: right
    - Y: up
    - Z: forward (depth into scene)
    """

    x: float
    y: float
    z: float

    def distance_to(self, other: Point3D) -> float:
        """Euclidean distance to another point."""
        return math.dist((self.x, self.y, self.z), (other.x, other.y, other.z))

    def as_array(self) -> npt.NDArray:
        return np.array([self.x, self.y, self.z])

    @classmethod
    def from_array(cls, arr: npt.NDArray) -> Point3D:
        return cls(float(arr[0]), float(arr[1]), float(arr[2]))

    def __str__(self) -> str:
        return f"({self.x:.3f}, {self.y:.3f}, {self.z:.3f})"


def _empty(cols: int, dtype=np.float64) -> npt.NDArray:
    return np.empty((0, cols), dtype=dtype)


@dataclass(frozen=True, slots=True)
class Mesh3D:
    """
    Triangle mesh.

    Attributes:
        vertices: (N, 3) vertex positions
        faces: (M, 3) vertex indices per triangle
        normals: (M, 3) unit normal per face (zero for degenerate faces)
        texture_coords: (N, 2) (u, v) per vertex
    """

    vertices: npt.NDArray = field(default_factory=lambda: _empty(3))
    faces: npt.NDArray = field(default_factory=lambda: _empty(3, np.int64))
    normals: npt.NDArray = field(default_factory=lambda: _empty(3))
    texture_coords: npt.NDArray = field(default_factory=lambda: _empty(2))

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def face_count(self) -> int:
        return len(self.faces)

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0

    def bounds(self) -> tuple[Point3D, Point3D] | None:
        """(min, max) corner of the vertex bounding box, None if empty."""
        if self.is_empty:
            return None
        return (
            Point3D.from_array(self.vertices.min(axis=0)),
            Point3D.from_array(self.vertices.max(axis=0)),
        )

    def summary(self) -> dict:
        """Vertex/face counts and bounding box, without the arrays."""
        bounds = self.bounds()
        box = None
        if bounds is not None:
            lo, hi = bounds
            box = {
                "min": {"x": lo.x, "y": lo.y, "z": lo.z},
                "max": {"x": hi.x, "y": hi.y, "z": hi.z},
            }
        return {
            "vertex_count": self.vertex_count,
            "face_count": self.face_count,
            "bounding_box": box,
        }

    def to_dict(self) -> dict:
        return {
            "vertices": self.vertices.tolist(),
            "faces": self.faces.tolist(),
            "normals": self.normals.tolist(),
            "texture_coords": self.texture_coords.tolist(),
        }


def face_normals(vertices: npt.NDArray, faces: npt.NDArray) -> npt.NDArray:
    """Unit normals of triangles (v1 - v0) x (v2 - v0); zero where degenerate."""
    if len(faces) == 0:
        return _empty(3)
    v0 = vertices[faces[:, 0]]
    v1 = vertices[faces[:, 1]]
    v2 = vertices[faces[:, 2]]
    normals = np.cross(v1 - v0, v2 - v0)
    length = np.linalg.norm(normals, axis=1, keepdims=True)
    return np.divide(normals, length, out=np.zeros_like(normals), where=length > 0)


class MeshReconstructor:
    """
    Depth-grid surface reconstruction.

    Samples are expected on a regular grid (as produced by DepthEstimator);
    grid rows and columns are the distinct sample y and x coordinates.

    Example:
        >>> reconstructor = MeshReconstructor()
        >>> mesh = reconstructor.reconstruct(samples, frame.width, frame.height)
        >>> print(f"{mesh.vertex_count} vertices, {mesh.face_count} faces")
    """

    __slots__ = ("_depth_scale",)

    def __init__(self, params: MorphologyParams | None = None) -> None:
        self._depth_scale = (params or MorphologyParams()).mesh_depth_scale

    def reconstruct(
        self,
        samples: Sequence[DepthSample],
        width: int,
        height: int,
    ) -> Mesh3D:
        """
        Triangulate depth samples.

        Args:
            samples: Depth samples on a regular grid
            width: Frame width the samples were taken from
            height: Frame height the samples were taken from

        Returns:
            Mesh3D (empty when there are no samples)
        """
        data = samples_to_array(samples)
        if len(data) == 0:
            return Mesh3D()

        # Row-major vertex order: y outer, x inner
        data = data[np.lexsort((data[:, 0], data[:, 1]))]
        sx, sy, depth = data[:, 0], data[:, 1], data[:, 2]

        f = 0.5 * width
        cx, cy = width / 2, height / 2
        z = depth * self._depth_scale
        vertices = np.column_stack([(sx - cx) * z / f, (cy - sy) * z / f, z])
        texture_coords = np.column_stack([sx / width, sy / height])

        faces = self._grid_faces(sx, sy)
        normals = face_normals(vertices, faces)

        logger.debug(
            "Reconstructed mesh: {} vertices, {} faces", len(vertices), len(faces)
        )
        return Mesh3D(vertices, faces, normals, texture_coords)

    @staticmethod
    def _grid_faces(sx: npt.NDArray, sy: npt.NDArray) -> npt.NDArray:
        """Two triangles per grid cell whose four corners all have a vertex."""
        cols, col_idx = np.unique(sx, return_inverse=True)
        rows, row_idx = np.unique(sy, return_inverse=True)

        grid = np.full((len(rows), len(cols)), -1, dtype=np.int64)
        grid[row_idx, col_idx] = np.arange(len(sx))

        tl = grid[:-1, :-1]
        tr = grid[:-1, 1:]
        bl = grid[1:, :-1]
        br = grid[1:, 1:]
        complete = (tl >= 0) & (tr >= 0) & (bl >= 0) & (br >= 0)

        upper = np.stack([tl[complete], tr[complete], bl[complete]], axis=1)
        lower = np.stack([tr[complete], br[complete], bl[complete]], axis=1)
        if len(upper) == 0:
            return _empty(3, np.int64)
        # Interleave so each cell's pair stays adjacent
        return np.stack([upper, lower], axis=1).reshape(-1, 3)
