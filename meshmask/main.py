#!/usr/bin/env python3
"""
Command line entry point: rasterize a closed STL surface into a NIfTI mask.

Usage:
  meshmask MESH OUTPUT REFERENCE

The mask is sampled on the grid of REFERENCE (its voxel counts and spacing)
and written to OUTPUT with the reference's affine and header. The number of
worker processes is taken from the MESHMASK_NUM_PROCESSES environment
variable and defaults to the number of CPUs.
"""

import argparse
import os
import sys

from meshmask.errors import ConfigurationError, MeshMaskError
from meshmask.geometry import MeshMask

NUM_PROCESSES_ENV = "MESHMASK_NUM_PROCESSES"


def num_processes_from_env(environ=None):
    environ = os.environ if environ is None else environ
    value = environ.get(NUM_PROCESSES_ENV)
    if value is None or not value.strip():
        return os.cpu_count() or 1
    try:
        count = int(value)
    except ValueError:
        raise ConfigurationError(
            f"{NUM_PROCESSES_ENV} must be an integer; got {value!r}"
        ) from None
    if count < 1:
        raise ConfigurationError(f"{NUM_PROCESSES_ENV} must be at least 1; got {count}")
    return count


def run(mesh_path, output_path, reference_path, num_processes=1, show_progress=True):
    """
    Generate the mask for a mesh on a reference grid and write it to disk.

    Nothing is written unless every stage before the write succeeded.
    """
    mask = MeshMask(
        mesh_path,
        reference_path,
        num_processes=num_processes,
        show_progress=show_progress,
    )
    mask.load()
    mask.generate_mask()
    mask.save_mask(output_path)
    return mask


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="meshmask",
        description="Voxelize a closed triangle mesh on the grid of a reference image",
    )
    parser.add_argument("mesh", help="Input mesh file (STL)")
    parser.add_argument("output", help="Output mask image (.nii or .nii.gz)")
    parser.add_argument("reference", help="Reference image defining shape and spacing")
    args = parser.parse_args(argv)

    print(f"MESH: {args.mesh}")
    print(f"OUT: {args.output}")
    print(f"REF: {args.reference}")

    try:
        num_processes = num_processes_from_env()
        run(args.mesh, args.output, args.reference, num_processes=num_processes)
    except MeshMaskError as exc:
        print(f"Error during {exc.stage}: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
