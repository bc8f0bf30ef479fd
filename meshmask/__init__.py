from meshmask.containment import classify
from meshmask.errors import (
    ConfigurationError,
    EmptyMeshError,
    InvalidShape,
    MeshMaskError,
    MeshParseError,
    ReferenceReadError,
    ShapeMismatch,
    UnsupportedDimensionality,
    VolumeWriteError,
)
from meshmask.geometry import MeshMask
from meshmask.io import load_mesh, read_reference, write_volume
from meshmask.primitives import (
    BoundingBox,
    Classification,
    GridCoordinate,
    GridGeometry,
    Mesh,
    Point,
    Triangle,
)
from meshmask.voxels import assemble, enumerate_coordinates, evaluate, to_mask, voxelize

__version__ = "0.1.0"
