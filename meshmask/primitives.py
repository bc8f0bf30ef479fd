from enum import IntEnum
from typing import NamedTuple, Tuple

import numpy as np

from meshmask.errors import EmptyMeshError, InvalidShape, UnsupportedDimensionality


class Classification(IntEnum):
    """Containment of a point with respect to a mesh; the value is the voxel code."""

    OUTSIDE = 0
    INSIDE = 1
    ON_BOUNDARY = 2


class Point(NamedTuple):
    x: float
    y: float
    z: float


class Triangle(NamedTuple):
    a: Point
    b: Point
    c: Point


class GridCoordinate(NamedTuple):
    x: int
    y: int
    z: int

    def to_point(self, spacing):
        """
        Map the integer coordinate to a physical point.

        Grid space and mesh space share origin and axes, so the mapping is a
        componentwise product with the voxel spacing.

        Parameters:
        spacing (sequence of float): Physical voxel size along x, y and z.

        Returns:
        Point: The physical location of the voxel.
        """
        return Point(
            float(self.x * spacing[0]),
            float(self.y * spacing[1]),
            float(self.z * spacing[2]),
        )


class BoundingBox(NamedTuple):
    minimum: Point
    maximum: Point

    @property
    def extents(self):
        return np.subtract(self.maximum, self.minimum)

    @property
    def diagonal(self):
        return float(np.linalg.norm(self.extents))

    def contains(self, point, margin=0.0):
        """
        Check whether a point lies strictly inside the box.

        Parameters:
        point (array-like): A 3-element point.
        margin (float): The point must be further than this from every face.

        Returns:
        bool: False for points on the box shell or outside of it.
        """
        p = np.asarray(point, dtype=float)
        lower = np.asarray(self.minimum) + margin
        upper = np.asarray(self.maximum) - margin
        return bool(np.all(p > lower) and np.all(p < upper))


class Mesh:
    """
    Read-only triangle soup with precomputed per-triangle geometry.

    The triangles are kept exactly as given: no vertex merging, no repair.
    Degenerate triangles are stored but flagged so they never take part in
    intersection tests. Each triangle also carries its own axis-aligned
    bounds, so tests against a single point or ray can skip triangles that
    cannot be reached.

    Parameters:
    triangles (array-like): Array of shape (N, 3, 3) holding three vertices per triangle.

    Raises:
    EmptyMeshError: If N is zero.
    ValueError: If the array does not have the (N, 3, 3) layout.
    """

    def __init__(self, triangles):
        triangles = np.array(triangles, dtype=np.float64)
        if triangles.size == 0:
            raise EmptyMeshError("Mesh contains no triangles")
        if triangles.ndim != 3 or triangles.shape[1:] != (3, 3):
            raise ValueError(
                f"Expected triangles of shape (N, 3, 3); got {triangles.shape}"
            )

        self.vertices = triangles
        self.origins = triangles[:, 0]
        self.edges_1 = triangles[:, 1] - self.origins
        self.edges_2 = triangles[:, 2] - self.origins

        normals = np.cross(self.edges_1, self.edges_2)
        doubled_areas = np.linalg.norm(normals, axis=1)

        flat = triangles.reshape(-1, 3)
        self.bounds = BoundingBox(
            Point(*flat.min(axis=0).tolist()),
            Point(*flat.max(axis=0).tolist()),
        )

        # Degenerate when the area vanishes relative to the mesh scale
        diagonal = self.bounds.diagonal
        self.nondegenerate = doubled_areas > (1e-12 * diagonal * diagonal)

        safe_areas = np.where(self.nondegenerate, doubled_areas, 1.0)
        self.doubled_areas = doubled_areas
        self.unit_normals = normals / safe_areas[:, None]

        edge_lengths = np.stack(
            [
                np.linalg.norm(self.edges_1, axis=1),
                np.linalg.norm(self.edges_2, axis=1),
                np.linalg.norm(triangles[:, 2] - triangles[:, 1], axis=1),
            ],
            axis=1,
        )
        longest = np.where(self.nondegenerate, edge_lengths.max(axis=1), 1.0)
        # Smallest altitude: converts barycentric coordinates into distances
        self.min_altitudes = safe_areas / longest

        # Per-triangle bounds, used to discard far triangles before exact tests
        self.lower = triangles.min(axis=1)
        self.upper = triangles.max(axis=1)
        # Growth of those bounds per unit of distance tolerance; covers the
        # barycentric slack of eps / min_altitude on each coordinate
        self.tolerance_reach = 8.0 * longest / self.min_altitudes + 1.0

        for array in (
            self.vertices,
            self.origins,
            self.edges_1,
            self.edges_2,
            self.nondegenerate,
            self.doubled_areas,
            self.unit_normals,
            self.min_altitudes,
            self.lower,
            self.upper,
            self.tolerance_reach,
        ):
            array.setflags(write=False)

    def __len__(self):
        return len(self.vertices)

    def __iter__(self):
        for a, b, c in self.vertices.tolist():
            yield Triangle(Point(*a), Point(*b), Point(*c))

    def __repr__(self):
        return f"Mesh(triangles={len(self)}, bounds={tuple(self.bounds)})"


class GridGeometry(NamedTuple):
    """Voxel counts and physical spacing of a three-dimensional sampling grid."""

    shape: Tuple[int, int, int]
    spacing: Tuple[float, float, float]

    @classmethod
    def from_header(cls, shape, spacing):
        """
        Build a grid description from the per-axis values of an image header.

        Only three spatial axes are consumed. Trailing singleton axes beyond
        the third (for example a time axis of length one) are discounted;
        any other extra axis is rejected rather than dropped.

        Parameters:
        shape (sequence of int): Voxel counts as reported by the header.
        spacing (sequence of float): Physical spacing per axis, at least one per spatial axis.

        Returns:
        GridGeometry: The validated three-axis geometry.

        Raises:
        UnsupportedDimensionality: If fewer than three axes, or a non-singleton fourth axis, are present.
        InvalidShape: If any voxel count is zero or negative.
        """
        shape = [int(n) for n in shape]
        while len(shape) > 3 and shape[-1] == 1:
            shape.pop()
        if len(shape) != 3:
            raise UnsupportedDimensionality(
                f"Expected 3 spatial axes; got {len(shape)} (shape {tuple(shape)})"
            )
        if len(spacing) < 3:
            raise UnsupportedDimensionality(
                f"Expected spacing for 3 spatial axes; got {len(spacing)}"
            )
        validate_shape(shape)
        return cls(tuple(shape), tuple(float(s) for s in spacing[:3]))

    @property
    def voxel_count(self):
        return self.shape[0] * self.shape[1] * self.shape[2]

    @property
    def array_shape(self):
        """Shape of the dense grid, indexed [z, y, x]."""
        return self.shape[2], self.shape[1], self.shape[0]


def validate_shape(shape):
    """Raise InvalidShape unless shape is three positive voxel counts."""
    if len(shape) != 3:
        raise InvalidShape(f"Expected 3 voxel counts; got {tuple(shape)}")
    if any(int(n) <= 0 for n in shape):
        raise InvalidShape(f"Voxel counts must be positive; got {tuple(shape)}")
    return tuple(int(n) for n in shape)
