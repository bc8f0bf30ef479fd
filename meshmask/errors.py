"""
Exception hierarchy for the voxelization pipeline.

Every error carries the name of the pipeline stage it belongs to so that the
command line can report where a run stopped.
"""


class MeshMaskError(Exception):
    """Base class for all pipeline failures."""

    stage = "voxelization"


class MeshParseError(MeshMaskError):
    """The mesh file could not be read or parsed."""

    stage = "mesh parse"


class EmptyMeshError(MeshMaskError, ValueError):
    """The mesh has no triangles, so containment is meaningless."""

    stage = "mesh parse"


class ReferenceReadError(MeshMaskError):
    """The reference image could not be read."""

    stage = "reference read"


class UnsupportedDimensionality(MeshMaskError, ValueError):
    """The reference grid does not have exactly three spatial axes."""

    stage = "dimensionality check"


class InvalidShape(MeshMaskError, ValueError):
    """A voxel count of the sampling grid is zero or negative."""

    stage = "dimensionality check"


class ShapeMismatch(MeshMaskError):
    """Classification results do not fill the target grid exactly."""

    stage = "volume assembly"


class VolumeWriteError(MeshMaskError):
    """The output volume could not be persisted."""

    stage = "volume write"


class ConfigurationError(MeshMaskError, ValueError):
    """A run parameter has an unusable value."""

    stage = "configuration"
