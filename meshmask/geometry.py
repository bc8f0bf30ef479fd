import time

from tqdm import tqdm

from meshmask.errors import ConfigurationError, VolumeWriteError
from meshmask.io import load_mesh, read_reference, write_volume
from meshmask.voxels import DEFAULT_CHUNK_SIZE, to_mask, voxelize


def format_duration(seconds):
    """Format elapsed seconds as 00h:00m:00.0000s."""
    total_millis = int(round(seconds * 1000))
    millis = total_millis % 1000
    s = (total_millis // 1000) % 60
    m = (total_millis // 60000) % 60
    h = total_millis // 3600000
    return f"{h:02d}h:{m:02d}m:{s:02d}.{millis:04d}s"


class MeshMask:
    def __init__(
        self,
        mesh_path,
        reference_path,
        num_processes=1,
        chunk_size=DEFAULT_CHUNK_SIZE,
        boundary_inside=True,
        show_progress=True,
    ):
        """
        Initialize the MeshMask class with the specified parameters.

        Parameters:
        mesh_path (str): Path to the closed surface mesh (STL).
        reference_path (str): Path to the reference image whose grid the mask is sampled on.
        num_processes (int, optional): Number of processes used for classification.
                                       Default is 1 (no parallelism).
        chunk_size (int, optional): Number of grid points per classification task.
        boundary_inside (bool, optional): Count voxels on the mesh surface as inside
                                          when producing the binary mask. Default is True.
        show_progress (bool, optional): Display a progress bar during classification.
        """
        if int(num_processes) < 1:
            raise ConfigurationError(
                f"num_processes must be at least 1; got {num_processes}"
            )
        if int(chunk_size) < 1:
            raise ConfigurationError(f"chunk_size must be at least 1; got {chunk_size}")

        self.mesh_path = mesh_path
        self.reference_path = reference_path
        self.num_processes = int(num_processes)
        self.chunk_size = int(chunk_size)
        self.boundary_inside = boundary_inside
        self.show_progress = show_progress

        # Inputs, filled by load()
        self.mesh = None
        self.reference = None

        # Classification codes indexed [z, y, x], filled by generate_mask()
        self.codes = None

    def load(self):
        """
        Read the mesh and the reference image geometry.
        """
        print("Reading mesh...")
        start = time.perf_counter()
        self.mesh = load_mesh(self.mesh_path)
        print(f"Done in {format_duration(time.perf_counter() - start)}")
        print(f"Mesh: {len(self.mesh)} triangles, bounds {tuple(self.mesh.bounds)}")

        print("Reading reference...")
        start = time.perf_counter()
        self.reference = read_reference(self.reference_path)
        print(f"Done in {format_duration(time.perf_counter() - start)}")
        print(f"Reference: shape {self.reference.geometry.shape}")
        print(f"Reference: spacing {self.reference.geometry.spacing}")

    def generate_mask(self):
        """
        Classify every voxel of the reference grid against the mesh.
        """
        if self.mesh is None or self.reference is None:
            self.load()

        geometry = self.reference.geometry
        print(f"Classifying {geometry.voxel_count} grid points...")
        start = time.perf_counter()
        with tqdm(
            total=geometry.voxel_count,
            desc="Classifying voxels",
            disable=not self.show_progress,
        ) as bar:
            self.codes = voxelize(
                self.mesh,
                geometry,
                num_processes=self.num_processes,
                chunk_size=self.chunk_size,
                progress=bar.update,
            )
        print(f"Done in {format_duration(time.perf_counter() - start)}")
        print(f"Mask generation complete. Shape: {self.codes.shape}")

    def get_codes(self):
        """
        Return the classification codes (0 outside, 1 inside, 2 on the surface).

        Returns:
        numpy.ndarray or None: Codes indexed [z, y, x], or None before generate_mask().
        """
        return self.codes

    def get_mask(self):
        """
        Return the binary mask.

        Returns:
        numpy.ndarray or None: uint8 mask indexed [z, y, x], or None before generate_mask().
        """
        if self.codes is None:
            return None
        return to_mask(self.codes, boundary_inside=self.boundary_inside)

    def save_mask(self, path):
        """
        Save the binary mask in the space of the reference image.

        Parameters:
        path (str): Output image path (.nii or .nii.gz).
        """
        if self.codes is None:
            raise VolumeWriteError(
                "No mask to save. Generate it first using 'generate_mask'."
            )

        print(f"Writing mask to {path}...")
        start = time.perf_counter()
        write_volume(self.get_mask(), path, self.reference)
        print(f"Done in {format_duration(time.perf_counter() - start)}")
