import numpy as np
from concurrent.futures import ProcessPoolExecutor, as_completed

from meshmask.containment import classify
from meshmask.errors import EmptyMeshError, ShapeMismatch
from meshmask.primitives import Classification, GridCoordinate, validate_shape

# Number of grid points handed to a worker at once
DEFAULT_CHUNK_SIZE = 4096

# Mesh shared by all chunks of a worker process, set by the pool initializer
_worker_mesh = None


class CoordinateGrid:
    """
    Ordered, restartable sequence of the integer coordinates of a grid.

    Iteration runs z outermost, then y, with x varying fastest. This is the
    same order in which a C-contiguous array indexed [z, y, x] stores its
    elements, which is what lets `assemble` fold a flat result sequence
    back into a volume without carrying coordinates along.

    Parameters:
    shape (tuple): Voxel counts (x, y, z).
    """

    def __init__(self, shape):
        self.shape = validate_shape(shape)

    def __len__(self):
        nx, ny, nz = self.shape
        return nx * ny * nz

    def __iter__(self):
        nx, ny, nz = self.shape
        for z in range(nz):
            for y in range(ny):
                for x in range(nx):
                    yield GridCoordinate(x, y, z)

    def to_array(self):
        """
        Return the whole sequence as an integer array.

        Returns:
        numpy.ndarray: Array of shape (N, 3) with columns x, y, z, in iteration order.
        """
        nx, ny, nz = self.shape
        z, y, x = np.indices((nz, ny, nx)).reshape(3, -1)
        return np.stack([x, y, z], axis=1)


def enumerate_coordinates(shape):
    """
    Enumerate the grid coordinates of a sampling grid.

    Parameters:
    shape (tuple): Voxel counts (x, y, z).

    Returns:
    CoordinateGrid: Lazy sequence of GridCoordinate values, x fastest.

    Raises:
    InvalidShape: If any voxel count is not positive.
    """
    return CoordinateGrid(shape)


def coordinate_to_point(coordinate, spacing):
    """Map an integer grid coordinate to its physical point."""
    return GridCoordinate(*coordinate).to_point(spacing)


def _classify_chunk(mesh, coordinates, spacing):
    """
    Classify a contiguous block of grid coordinates.

    Parameters
    ----------
    mesh : Mesh
        Surface to test against.
    coordinates : numpy.ndarray
        Integer array of shape (N, 3).
    spacing : numpy.ndarray
        Physical voxel size along x, y and z.

    Returns
    -------
    numpy.ndarray
        uint8 codes, one per coordinate, in the same order.
    """
    points = coordinates * spacing
    return np.fromiter(
        (classify(mesh, point) for point in points),
        dtype=np.uint8,
        count=len(points),
    )


def _init_worker(mesh):
    global _worker_mesh
    _worker_mesh = mesh


def _chunk_worker(args):
    coordinates, spacing = args
    return _classify_chunk(_worker_mesh, coordinates, spacing)


def evaluate(
    mesh,
    coordinates,
    spacing,
    num_processes=1,
    chunk_size=DEFAULT_CHUNK_SIZE,
    progress=None,
):
    """
    Classify every grid coordinate against the mesh, preserving input order.

    The coordinates are cut into contiguous chunks. With more than one process
    the chunks run on a process pool; each worker receives the mesh once, when
    it starts. Finished chunks are written into a pre-sized buffer at their
    start index, so result[i] always belongs to coordinates[i] whatever the
    completion order.

    Parameters:
    mesh (Mesh): Surface to test against. Never modified.
    coordinates (CoordinateGrid or array-like): Grid coordinates, one (x, y, z) triple each.
    spacing (sequence of float): Physical voxel size along x, y and z.
    num_processes (int, optional): Worker processes. Default 1 evaluates in the calling process.
    chunk_size (int, optional): Grid points per task.
    progress (callable, optional): Called with the number of points finished after each chunk.

    Returns:
    numpy.ndarray: uint8 classification codes, one per coordinate.
    """
    if isinstance(coordinates, CoordinateGrid):
        coordinates = coordinates.to_array()
    coordinates = np.asarray(coordinates, dtype=np.int64).reshape(-1, 3)
    spacing = np.asarray(spacing, dtype=np.float64)
    chunk_size = max(1, int(chunk_size))

    results = np.zeros(len(coordinates), dtype=np.uint8)
    starts = range(0, len(coordinates), chunk_size)

    if num_processes > 1 and len(starts) > 1:
        with ProcessPoolExecutor(
            max_workers=num_processes, initializer=_init_worker, initargs=(mesh,)
        ) as executor:
            futures = {
                executor.submit(
                    _chunk_worker, (coordinates[start : start + chunk_size], spacing)
                ): start
                for start in starts
            }
            for future in as_completed(futures):
                start = futures[future]
                codes = future.result()
                results[start : start + len(codes)] = codes
                if progress is not None:
                    progress(len(codes))
    else:
        for start in starts:
            codes = _classify_chunk(mesh, coordinates[start : start + chunk_size], spacing)
            results[start : start + len(codes)] = codes
            if progress is not None:
                progress(len(codes))

    return results


def assemble(results, shape):
    """
    Fold a flat sequence of classification codes into a dense volume.

    Parameters:
    results (array-like): One code per grid coordinate, in enumeration order.
    shape (tuple): Voxel counts (x, y, z).

    Returns:
    numpy.ndarray: uint8 volume of shape (z, y, x).

    Raises:
    ShapeMismatch: If the number of results differs from the number of voxels.
    """
    nx, ny, nz = validate_shape(shape)
    results = np.asarray(results, dtype=np.uint8)

    expected = nx * ny * nz
    if results.ndim != 1 or results.size != expected:
        raise ShapeMismatch(
            f"Got {results.size} classification results (shape {results.shape}) "
            f"for a grid of {nx}x{ny}x{nz} = {expected} voxels"
        )

    # C order puts x last, matching the enumeration where x varies fastest
    return results.reshape((nz, ny, nx)).copy()


def voxelize(
    mesh,
    geometry,
    num_processes=1,
    chunk_size=DEFAULT_CHUNK_SIZE,
    progress=None,
):
    """
    Classify every voxel of a sampling grid against a mesh.

    Parameters:
    mesh (Mesh): Closed surface in the grid's physical coordinates.
    geometry (GridGeometry): Voxel counts and spacing of the target grid.
    num_processes (int, optional): Worker processes for classification.
    chunk_size (int, optional): Grid points per task.
    progress (callable, optional): Side channel receiving finished point counts.

    Returns:
    numpy.ndarray: uint8 volume of classification codes, indexed [z, y, x].
    """
    if len(mesh) == 0:
        raise EmptyMeshError("Cannot voxelize a mesh without triangles")

    coordinates = enumerate_coordinates(geometry.shape)
    results = evaluate(
        mesh,
        coordinates,
        geometry.spacing,
        num_processes=num_processes,
        chunk_size=chunk_size,
        progress=progress,
    )
    return assemble(results, geometry.shape)


def to_mask(volume, boundary_inside=True):
    """
    Convert classification codes into a binary mask.

    Parameters:
    volume (numpy.ndarray): Volume of Classification codes.
    boundary_inside (bool, optional): Count ON_BOUNDARY voxels as inside. Default True.

    Returns:
    numpy.ndarray: uint8 array of the same shape holding 0 and 1.
    """
    volume = np.asarray(volume)
    mask = volume == int(Classification.INSIDE)
    if boundary_inside:
        mask |= volume == int(Classification.ON_BOUNDARY)
    return mask.astype(np.uint8)
