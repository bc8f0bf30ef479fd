"""
Point-in-mesh containment.

A point is classified in three steps: a bounding-box rejection, a test for
lying on one of the triangles, and finally a ray-parity count. All tolerances
are relative to the diagonal of the mesh's bounding box, so a mesh measured
in metres and the same mesh measured in millimetres classify identically.

The exact tests only look at triangles whose own bounds, grown by the
tolerance, can be reached from the point or along the ray.
"""

import numpy as np

from meshmask.primitives import Classification

# Tolerance as a fraction of the bounding-box diagonal
EPSILON_SCALE = 1e-7

# Tilts of the ray away from +x when a cast grazes an edge or vertex.
# Retries alternate between the two, so no plane holds every direction.
RAY_NUDGES = (
    np.array([0.0, 0.0137, 0.0071]),
    np.array([0.0, 0.0071, 0.0137]),
)
MAX_RAY_ATTEMPTS = 8


def _ray_directions():
    base = np.array([1.0, 0.0, 0.0])
    directions = [base]
    for attempt in range(1, MAX_RAY_ATTEMPTS):
        nudge = RAY_NUDGES[(attempt - 1) % 2]
        direction = base + ((attempt + 1) // 2) * nudge
        directions.append(direction / np.linalg.norm(direction))
    return directions


RAY_DIRECTIONS = _ray_directions()


def classify(mesh, point):
    """
    Classify a physical point against a mesh.

    The function only reads the mesh, so any number of callers may share one
    mesh concurrently.

    Points on the shell of the mesh's bounding box (within tolerance) are
    reported as OUTSIDE by the prefilter. ON_BOUNDARY is therefore only
    reported for surface points strictly inside the bounding box.

    Parameters:
    mesh (Mesh): The closed surface to test against.
    point (array-like): A 3-element physical point.

    Returns:
    Classification: OUTSIDE, INSIDE or ON_BOUNDARY.
    """
    point = np.asarray(point, dtype=np.float64)
    eps = EPSILON_SCALE * mesh.bounds.diagonal

    if not mesh.bounds.contains(point, margin=eps):
        return Classification.OUTSIDE

    if on_surface(mesh, point, eps):
        return Classification.ON_BOUNDARY

    crossings = 0
    for direction in RAY_DIRECTIONS:
        crossings, tied = count_crossings(mesh, point, direction, eps)
        if not tied:
            break

    return Classification.INSIDE if crossings % 2 else Classification.OUTSIDE


def _surface_candidates(mesh, point, eps):
    """Indices of non-degenerate triangles whose grown bounds contain the point."""
    margin = (eps * mesh.tolerance_reach)[:, None]
    near = np.all(mesh.lower - margin <= point, axis=1) & np.all(
        point <= mesh.upper + margin, axis=1
    )
    return np.flatnonzero(mesh.nondegenerate & near)


def _ray_candidates(mesh, origin, direction, eps):
    """
    Indices of non-degenerate triangles whose grown bounds meet the ray.

    Slab test of the half-line origin + t * direction, t >= 0, against each
    triangle's bounding box.
    """
    margin = (eps * mesh.tolerance_reach)[:, None]
    lower = mesh.lower - margin
    upper = mesh.upper + margin

    t_near = np.zeros(len(mesh))
    t_far = np.full(len(mesh), np.inf)
    for axis in range(3):
        if direction[axis] == 0.0:
            inside = (lower[:, axis] <= origin[axis]) & (origin[axis] <= upper[:, axis])
            t_far = np.where(inside, t_far, -np.inf)
            continue
        t_lower = (lower[:, axis] - origin[axis]) / direction[axis]
        t_upper = (upper[:, axis] - origin[axis]) / direction[axis]
        t_near = np.maximum(t_near, np.minimum(t_lower, t_upper))
        t_far = np.minimum(t_far, np.maximum(t_lower, t_upper))

    return np.flatnonzero(mesh.nondegenerate & (t_near <= t_far))


def on_surface(mesh, point, eps):
    """
    Check whether the point lies on any non-degenerate triangle.

    Parameters:
    mesh (Mesh): The mesh to test.
    point (numpy.ndarray): A 3-element point.
    eps (float): Distance tolerance.

    Returns:
    bool: True if the point is within eps of some triangle.
    """
    candidates = _surface_candidates(mesh, point, eps)
    if candidates.size == 0:
        return False

    offsets = point - mesh.origins[candidates]
    normals = mesh.unit_normals[candidates]
    distances = np.einsum("ij,ij->i", offsets, normals)
    near = np.abs(distances) <= eps
    if not np.any(near):
        return False
    candidates = candidates[near]

    # Barycentric coordinates of the projection onto each nearby plane
    projected = offsets[near] - distances[near, None] * normals[near]
    e1 = mesh.edges_1[candidates]
    e2 = mesh.edges_2[candidates]
    d00 = np.einsum("ij,ij->i", e1, e1)
    d01 = np.einsum("ij,ij->i", e1, e2)
    d11 = np.einsum("ij,ij->i", e2, e2)
    d20 = np.einsum("ij,ij->i", projected, e1)
    d21 = np.einsum("ij,ij->i", projected, e2)
    denominator = d00 * d11 - d01 * d01

    v = (d11 * d20 - d01 * d21) / denominator
    w = (d00 * d21 - d01 * d20) / denominator
    u = 1.0 - v - w

    tolerance = eps / mesh.min_altitudes[candidates]
    inside = (u >= -tolerance) & (v >= -tolerance) & (w >= -tolerance)
    return bool(np.any(inside))


def count_crossings(mesh, origin, direction, eps):
    """
    Count transversal crossings of a ray with the mesh (Moller-Trumbore).

    A crossing within tolerance of a triangle edge or vertex, or a triangle
    lying in a plane that contains the ray, makes the cast ambiguous: it
    could be counted once, twice or not at all depending on rounding.

    Parameters:
    mesh (Mesh): The mesh to intersect.
    origin (numpy.ndarray): Ray origin.
    direction (numpy.ndarray): Unit ray direction.
    eps (float): Distance tolerance; hits with parameter t <= eps are ignored.

    Returns:
    tuple: (number of clean crossings, True if the cast was ambiguous).
    """
    candidates = _ray_candidates(mesh, origin, direction, eps)
    if candidates.size == 0:
        return 0, False

    v0 = mesh.origins[candidates]
    e1 = mesh.edges_1[candidates]
    e2 = mesh.edges_2[candidates]

    pvec = np.cross(direction, e2)
    det = np.einsum("ij,ij->i", e1, pvec)
    parallel = np.abs(det) <= EPSILON_SCALE * mesh.doubled_areas[candidates]

    offsets = origin - v0
    tied = False

    if np.any(parallel):
        # A triangle containing the ray's line ahead of the origin is a tie
        lying = candidates[parallel]
        plane_distance = np.einsum(
            "ij,ij->i", offsets[parallel], mesh.unit_normals[lying]
        )
        ahead = np.einsum("ijk,k->ij", mesh.vertices[lying] - origin, direction).max(
            axis=1
        )
        tied = bool(np.any((np.abs(plane_distance) <= eps) & (ahead > eps)))

    crossing = ~parallel
    safe_det = np.where(crossing, det, 1.0)
    inverse = 1.0 / safe_det

    u = np.einsum("ij,ij->i", offsets, pvec) * inverse
    qvec = np.cross(offsets, e1)
    v = (qvec @ direction) * inverse
    t = np.einsum("ij,ij->i", e2, qvec) * inverse

    tolerance = eps / mesh.min_altitudes[candidates]
    ahead = crossing & (t > eps)
    touching = (
        ahead
        & (u >= -tolerance)
        & (v >= -tolerance)
        & (u + v <= 1.0 + tolerance)
    )
    interior = (
        touching & (u > tolerance) & (v > tolerance) & (u + v < 1.0 - tolerance)
    )

    if np.any(touching & ~interior):
        tied = True

    return int(np.count_nonzero(interior)), tied
