"""
Readers and writers around the voxelization core.

Meshes are parsed with trimesh, reference images are read and output volumes
written with nibabel.
"""

import io
import os
from typing import Any, NamedTuple

import nibabel as nib
import numpy as np
import trimesh as trm

from meshmask.errors import (
    EmptyMeshError,
    MeshParseError,
    ReferenceReadError,
    ShapeMismatch,
    VolumeWriteError,
)
from meshmask.primitives import GridGeometry, Mesh


class Reference(NamedTuple):
    """Geometry of a reference image plus the metadata needed to write in its space."""

    geometry: GridGeometry
    affine: Any
    header: Any


def mesh_from_trimesh(mesh):
    """
    Convert a trimesh object into a read-only Mesh.

    Scenes are flattened by concatenating their geometries.

    Parameters:
    mesh (trimesh.Trimesh or trimesh.Scene): Loaded surface.

    Returns:
    Mesh: The triangles of the surface.

    Raises:
    EmptyMeshError: If the surface has no triangles.
    """
    if isinstance(mesh, trm.Scene):
        geometries = [g for g in mesh.geometry.values() if isinstance(g, trm.Trimesh)]
        if not geometries:
            raise EmptyMeshError("Mesh scene contains no triangle geometry")
        mesh = trm.util.concatenate(geometries)

    faces = getattr(mesh, "faces", None)
    if faces is None or len(faces) == 0:
        raise EmptyMeshError("Mesh contains no triangles")

    return Mesh(mesh.triangles)


def load_mesh_bytes(data, file_type="stl"):
    """
    Parse raw mesh-file bytes.

    Parameters:
    data (bytes): Content of the mesh file.
    file_type (str, optional): Format understood by trimesh. Default is 'stl'.

    Returns:
    Mesh: The parsed triangles, unrepaired.

    Raises:
    MeshParseError: If trimesh cannot parse the data.
    EmptyMeshError: If the data describes no triangles.
    """
    try:
        loaded = trm.load(io.BytesIO(data), file_type=file_type, process=False)
    except Exception as exc:
        raise MeshParseError(f"Cannot parse {file_type} data: {exc}") from exc

    return mesh_from_trimesh(loaded)


def load_mesh(path):
    """
    Load a mesh file from disk.

    The format is taken from the file extension, defaulting to STL.

    Parameters:
    path (str): Path to the mesh file.

    Returns:
    Mesh: The parsed triangles.
    """
    extension = os.path.splitext(str(path))[1].lower().lstrip(".")
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as exc:
        raise MeshParseError(f"Cannot read mesh file {path}: {exc}") from exc

    try:
        return load_mesh_bytes(data, file_type=extension or "stl")
    except MeshParseError as exc:
        raise MeshParseError(f"{path}: {exc}") from exc
    except EmptyMeshError as exc:
        raise EmptyMeshError(f"{path}: {exc}") from exc


def read_reference(path):
    """
    Read the sampling geometry of a reference image.

    Only the header is inspected; voxel data is never loaded.

    Parameters:
    path (str): Path to a NIfTI (or other nibabel-readable) image.

    Returns:
    Reference: The validated grid geometry with the image affine and header.

    Raises:
    ReferenceReadError: If the image cannot be opened.
    UnsupportedDimensionality: If the image does not have exactly 3 spatial axes.
    InvalidShape: If an axis has no voxels.
    """
    try:
        image = nib.load(str(path))
        header = image.header
        shape = header.get_data_shape()
        spacing = header.get_zooms()
    except Exception as exc:
        raise ReferenceReadError(f"Cannot read reference image {path}: {exc}") from exc

    geometry = GridGeometry.from_header(shape, spacing)
    return Reference(geometry, image.affine, header)


def write_volume(volume, path, reference):
    """
    Write a volume in the space of a reference image.

    The volume is indexed [z, y, x]; it is transposed to the reference's
    [x, y, z] data order and stored as uint8 with the reference affine and a
    copy of its header. The file is written next to the target and renamed
    into place, so a failed write never leaves a partial output.

    Parameters:
    volume (numpy.ndarray): Grid of shape (z, y, x).
    path (str): Output path; the extension selects the format (.nii, .nii.gz).
    reference (Reference): Geometry and metadata of the reference image.

    Raises:
    ShapeMismatch: If the volume does not match the reference voxel counts.
    VolumeWriteError: If the file cannot be written.
    """
    data = np.ascontiguousarray(np.asarray(volume, dtype=np.uint8).transpose(2, 1, 0))
    if data.shape != tuple(reference.geometry.shape):
        raise ShapeMismatch(
            f"Volume shape {data.shape} (x, y, z) does not match reference "
            f"shape {tuple(reference.geometry.shape)}"
        )

    path = str(path)
    directory, name = os.path.split(os.path.abspath(path))
    partial = os.path.join(directory, f".partial-{name}")

    try:
        header = reference.header.copy()
        header.set_data_dtype(np.uint8)
        image = nib.Nifti1Image(data, reference.affine, header=header)
        nib.save(image, partial)
        os.replace(partial, path)
    except Exception as exc:
        if os.path.exists(partial):
            os.remove(partial)
        raise VolumeWriteError(f"Cannot write volume to {path}: {exc}") from exc
