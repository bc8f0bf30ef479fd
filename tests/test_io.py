"""Tests for mesh loading and reference image reading and writing."""

import nibabel as nib
import numpy as np
import pytest
import trimesh

from meshmask.errors import (
    EmptyMeshError,
    MeshParseError,
    ReferenceReadError,
    ShapeMismatch,
    UnsupportedDimensionality,
    VolumeWriteError,
)
from meshmask.io import (
    load_mesh,
    load_mesh_bytes,
    mesh_from_trimesh,
    read_reference,
    write_volume,
)

from conftest import box_mesh, write_reference


class TestLoadMesh:
    """Tests for STL parsing."""

    def test_loads_triangles_and_bounds(self, cube_stl):
        mesh = load_mesh(cube_stl)
        assert len(mesh) == 12
        assert mesh.bounds.minimum == pytest.approx((0.5, 0.5, 0.5))
        assert mesh.bounds.maximum == pytest.approx((1.5, 1.5, 1.5))

    def test_loads_bytes(self, cube_stl):
        mesh = load_mesh_bytes(cube_stl.read_bytes(), file_type="stl")
        assert len(mesh) == 12

    def test_zero_triangles(self, empty_stl):
        with pytest.raises(EmptyMeshError):
            load_mesh(empty_stl)

    def test_missing_file(self, tmp_path):
        with pytest.raises(MeshParseError) as info:
            load_mesh(tmp_path / "missing.stl")
        assert "missing.stl" in str(info.value)

    def test_garbage_is_a_mesh_parse_failure(self, tmp_path):
        path = tmp_path / "garbage.stl"
        path.write_bytes(b"this is not a mesh")
        with pytest.raises((MeshParseError, EmptyMeshError)) as info:
            load_mesh(path)
        assert info.value.stage == "mesh parse"

    def test_scene_is_concatenated(self):
        scene = trimesh.Scene(
            [box_mesh((0, 0, 0), (1, 1, 1)), box_mesh((2, 0, 0), (3, 1, 1))]
        )
        mesh = mesh_from_trimesh(scene)
        assert len(mesh) == 24
        assert mesh.bounds.maximum == pytest.approx((3.0, 1.0, 1.0))

    def test_empty_scene(self):
        with pytest.raises(EmptyMeshError):
            mesh_from_trimesh(trimesh.Scene())


class TestReadReference:
    """Tests for reading the sampling grid of a reference image."""

    def test_shape_and_spacing(self, tmp_path):
        path = write_reference(tmp_path / "ref.nii.gz", (5, 4, 3), (0.5, 0.75, 2.0))
        reference = read_reference(path)
        assert reference.geometry.shape == (5, 4, 3)
        assert reference.geometry.spacing == pytest.approx((0.5, 0.75, 2.0))

    def test_trailing_singleton_axis(self, tmp_path):
        path = write_reference(tmp_path / "ref.nii", (5, 4, 3, 1), (1.0, 1.0, 1.0, 1.0))
        assert read_reference(path).geometry.shape == (5, 4, 3)

    def test_time_axis_is_rejected(self, tmp_path):
        path = write_reference(tmp_path / "ref.nii", (5, 4, 3, 2), (1.0, 1.0, 1.0, 1.0))
        with pytest.raises(UnsupportedDimensionality):
            read_reference(path)

    def test_two_dimensional_is_rejected(self, tmp_path):
        path = write_reference(tmp_path / "ref.nii", (5, 4), (1.0, 1.0))
        with pytest.raises(UnsupportedDimensionality):
            read_reference(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ReferenceReadError):
            read_reference(tmp_path / "missing.nii")

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "broken.nii"
        path.write_bytes(b"\0" * 16)
        with pytest.raises(ReferenceReadError):
            read_reference(path)


class TestWriteVolume:
    """Tests for writing a [z, y, x] volume in reference space."""

    def test_round_trip_geometry(self, tmp_path):
        ref_path = write_reference(tmp_path / "ref.nii", (4, 3, 2), (0.5, 1.0, 2.0))
        reference = read_reference(ref_path)
        volume = np.zeros((2, 3, 4), dtype=np.uint8)
        volume[1, 2, 3] = 1

        out = tmp_path / "out.nii.gz"
        write_volume(volume, out, reference)

        written = nib.load(str(out))
        data = np.asarray(written.dataobj)
        assert data.shape == (4, 3, 2)
        assert data.dtype == np.uint8
        assert data[3, 2, 1] == 1
        assert data.sum() == 1
        assert written.header.get_zooms()[:3] == pytest.approx((0.5, 1.0, 2.0))
        np.testing.assert_allclose(written.affine, reference.affine)

    def test_shape_mismatch(self, tmp_path):
        reference = read_reference(write_reference(tmp_path / "ref.nii", (4, 3, 2)))
        with pytest.raises(ShapeMismatch):
            write_volume(np.zeros((4, 3, 2), dtype=np.uint8), tmp_path / "out.nii", reference)

    def test_unwritable_path_leaves_nothing(self, tmp_path):
        reference = read_reference(write_reference(tmp_path / "ref.nii", (2, 2, 2)))
        out = tmp_path / "missing_dir" / "out.nii"
        with pytest.raises(VolumeWriteError):
            write_volume(np.zeros((2, 2, 2), dtype=np.uint8), out, reference)
        assert not out.exists()

    def test_unknown_extension(self, tmp_path):
        reference = read_reference(write_reference(tmp_path / "ref.nii", (2, 2, 2)))
        out = tmp_path / "out.unknown"
        with pytest.raises(VolumeWriteError):
            write_volume(np.zeros((2, 2, 2), dtype=np.uint8), out, reference)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["ref.nii"]
