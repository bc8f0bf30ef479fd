"""Pytest fixtures for meshmask tests."""

import struct

import nibabel as nib
import numpy as np
import pytest
import trimesh

from meshmask.primitives import Mesh


def box_mesh(lower, upper):
    """Axis-aligned box surface spanning lower..upper."""
    lower = np.asarray(lower, dtype=float)
    upper = np.asarray(upper, dtype=float)
    box = trimesh.creation.box(extents=upper - lower)
    box.apply_translation((lower + upper) / 2.0)
    return box


def write_reference(path, shape, zooms=(1.0, 1.0, 1.0)):
    """Write a zero-filled NIfTI image with the given shape and voxel sizes."""
    # nibabel derives the spatial zooms from the affine on save
    affine = np.eye(4)
    for axis, zoom in enumerate(zooms[:3]):
        affine[axis, axis] = zoom
    image = nib.Nifti1Image(np.zeros(shape, dtype=np.float32), affine)
    image.header.set_zooms(zooms)
    nib.save(image, str(path))
    return path


@pytest.fixture
def cube():
    """Cube spanning (0, 0, 0) to (10, 10, 10)."""
    return Mesh(box_mesh((0, 0, 0), (10, 10, 10)).triangles)


@pytest.fixture
def two_cubes():
    """Two separate cubes along x; the gap makes the union non-convex."""
    first = box_mesh((0, 0, 0), (10, 10, 10))
    second = box_mesh((20, 0, 0), (30, 10, 10))
    return Mesh(trimesh.util.concatenate([first, second]).triangles)


@pytest.fixture
def cube_stl(tmp_path):
    """STL of a unit cube centred on grid point (1, 1, 1)."""
    path = tmp_path / "cube.stl"
    box_mesh((0.5, 0.5, 0.5), (1.5, 1.5, 1.5)).export(str(path))
    return path


@pytest.fixture
def empty_stl(tmp_path):
    """Binary STL with a valid header and zero triangles."""
    path = tmp_path / "empty.stl"
    path.write_bytes(b"\0" * 80 + struct.pack("<I", 0))
    return path


@pytest.fixture
def reference_3x3x3(tmp_path):
    return write_reference(tmp_path / "reference.nii", (3, 3, 3))
