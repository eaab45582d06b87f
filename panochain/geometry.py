"""
2D transform models shared by the robust and direct estimators.

Transforms are 3x3 float64 arrays in column-vector convention:
[x', y', 1]^T ~ T @ [x, y, 1]^T. All functions return new arrays.
"""

from enum import Enum

import numpy as np

from .errors import InputContractViolation, InsufficientCorrespondences, NumericalDegeneracy

# Triangle areas / point distances below this are treated as degenerate
DEGENERACY_TOL = 1e-6

# Homogeneous scale below which a projected point is considered at infinity
HOMOGENEOUS_EPS = 1e-12


class ModelKind(str, Enum):
    """Transform family fitted between two point sets."""
    PROJECTIVE = 'projective'
    AFFINE = 'affine'
    SIMILARITY = 'similarity'

    @property
    def min_points(self):
        """Minimal sample size that determines the model."""
        return _MIN_POINTS[self]

    @classmethod
    def coerce(cls, value):
        """Turn a ModelKind or its name into a ModelKind."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InputContractViolation(
                f"Unknown model kind {value!r}; expected one of "
                f"{[kind.value for kind in cls]}"
            ) from None


_MIN_POINTS = {
    ModelKind.PROJECTIVE: 4,
    ModelKind.AFFINE: 3,
    ModelKind.SIMILARITY: 2,
}

# Fallback order used when a higher-order model cannot be estimated
FALLBACK_ORDER = (ModelKind.PROJECTIVE, ModelKind.AFFINE, ModelKind.SIMILARITY)


def identity():
    return np.eye(3, dtype=np.float64)


def translation(tx, ty):
    return np.array([
        [1.0, 0.0, tx],
        [0.0, 1.0, ty],
        [0.0, 0.0, 1.0]
    ], dtype=np.float64)


def as_points(points):
    """Validate and convert to an (N, 2) float64 array."""
    points = np.asarray(points, dtype=np.float64)
    if points.size == 0:
        return points.reshape(0, 2)
    if points.ndim != 2 or points.shape[1] != 2:
        raise InputContractViolation(
            f"Expected an (N, 2) array of points, got shape {points.shape}"
        )
    return points


def apply_transform(points, T):
    """
    Apply transform to points.

    Args:
        points: Points to transform (N x 2)
        T: Transform matrix (3 x 3)

    Returns:
        Transformed points (N x 2). Points sent to infinity come back as +/-inf.
    """
    points = as_points(points)
    points_homogeneous = np.hstack([points, np.ones((len(points), 1))])
    transformed = (T @ points_homogeneous.T).T

    w = transformed[:, 2:3]
    at_infinity = np.abs(w) < HOMOGENEOUS_EPS
    w = np.where(at_infinity, 1.0, w)
    result = transformed[:, :2] / w

    if np.any(at_infinity):
        signs = np.where(transformed[:, :2] >= 0, np.inf, -np.inf)
        result = np.where(at_infinity, signs, result)

    return result


def reprojection_errors(src_pts, dst_pts, T):
    """Euclidean distance between T(src) and dst for every correspondence."""
    projected = apply_transform(src_pts, T)
    errors = np.sqrt(np.sum((dst_pts - projected) ** 2, axis=1))
    return np.where(np.isfinite(errors), errors, np.inf)


def image_corners(image_size):
    """Corners of an image of size (height, width) in pixel-edge coordinates."""
    h, w = image_size[:2]
    return np.array([
        [0, 0],
        [w, 0],
        [w, h],
        [0, h]
    ], dtype=np.float64)


def transformed_extent(T, image_size):
    """(x_min, x_max, y_min, y_max) of an image's corners under T."""
    corners = apply_transform(image_corners(image_size), T)
    return (corners[:, 0].min(), corners[:, 0].max(),
            corners[:, 1].min(), corners[:, 1].max())


def is_invertible(T, tol=1e-10):
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (3, 3) or not np.all(np.isfinite(T)):
        return False
    det = np.linalg.det(T)
    return bool(np.isfinite(det) and abs(det) > tol)


def linear_part_health(T):
    """Determinant and condition number of the upper-left 2x2 block."""
    A = np.asarray(T, dtype=np.float64)[:2, :2]
    with np.errstate(all='ignore'):
        det = np.linalg.det(A)
        cond = np.linalg.cond(A)
    return det, cond


def _triangle_area(p, q, r):
    return 0.5 * abs((q[0] - p[0]) * (r[1] - p[1]) - (q[1] - p[1]) * (r[0] - p[0]))


def is_degenerate_sample(kind, points):
    """
    Check whether a minimal sample cannot determine a model of this kind.

    Similarity needs two distinct points, affine a non-collinear triple and
    projective four points with no three collinear.
    """
    kind = ModelKind.coerce(kind)
    points = as_points(points)

    if kind is ModelKind.SIMILARITY:
        return np.hypot(*(points[1] - points[0])) < DEGENERACY_TOL

    if kind is ModelKind.AFFINE:
        return _triangle_area(points[0], points[1], points[2]) < DEGENERACY_TOL

    for skip in range(4):
        triple = [points[i] for i in range(4) if i != skip]
        if _triangle_area(*triple) < DEGENERACY_TOL:
            return True
    return False


def _normalize_points(points):
    """
    Normalize points for better numerical stability.

    Translates points so centroid is at origin and scales so
    average distance from origin is sqrt(2).
    """
    centroid = np.mean(points, axis=0)
    points_centered = points - centroid
    avg_dist = np.mean(np.sqrt(np.sum(points_centered ** 2, axis=1)))

    if avg_dist < 1e-10:
        avg_dist = 1.0

    scale = np.sqrt(2) / avg_dist
    T = np.array([
        [scale, 0, -scale * centroid[0]],
        [0, scale, -scale * centroid[1]],
        [0, 0, 1]
    ])
    return points_centered * scale, T


def fit_projective(src_pts, dst_pts):
    """
    Fit a homography with the normalized Direct Linear Transform.

    For each correspondence (x, y) -> (x', y') two rows of the homogeneous
    system A h = 0 are stacked; h is the right singular vector of the
    smallest singular value.
    """
    n = len(src_pts)
    if n < 4:
        raise InsufficientCorrespondences(4, n)

    src_norm, T_src = _normalize_points(src_pts)
    dst_norm, T_dst = _normalize_points(dst_pts)

    x, y = src_norm[:, 0], src_norm[:, 1]
    xp, yp = dst_norm[:, 0], dst_norm[:, 1]
    zeros = np.zeros(n)
    ones = np.ones(n)

    A = np.empty((2 * n, 9))
    A[0::2] = np.column_stack([-x, -y, -ones, zeros, zeros, zeros, x * xp, y * xp, xp])
    A[1::2] = np.column_stack([zeros, zeros, zeros, -x, -y, -ones, x * yp, y * yp, yp])

    try:
        _, _, Vt = np.linalg.svd(A)
        H = np.linalg.inv(T_dst) @ Vt[-1].reshape(3, 3) @ T_src
    except np.linalg.LinAlgError as e:
        raise NumericalDegeneracy(f"Homography solve failed: {e}") from e

    if not np.all(np.isfinite(H)) or abs(H[2, 2]) < HOMOGENEOUS_EPS:
        raise NumericalDegeneracy("Homography is not normalizable")

    return H / H[2, 2]


def fit_affine(src_pts, dst_pts):
    """Least-squares affine fit (6 parameters)."""
    n = len(src_pts)
    if n < 3:
        raise InsufficientCorrespondences(3, n)

    A = np.zeros((2 * n, 6))
    A[0::2, 0:2] = src_pts
    A[0::2, 2] = 1
    A[1::2, 3:5] = src_pts
    A[1::2, 5] = 1
    b = dst_pts.reshape(-1)

    params, rank = _solve(A, b)
    if rank < 6:
        raise NumericalDegeneracy("Affine system is rank deficient")

    return np.array([
        [params[0], params[1], params[2]],
        [params[3], params[4], params[5]],
        [0.0, 0.0, 1.0]
    ])


def fit_similarity(src_pts, dst_pts):
    """
    Least-squares similarity fit (uniform scale, rotation, translation).

    x' = a x - b y + tx
    y' = b x + a y + ty
    """
    n = len(src_pts)
    if n < 2:
        raise InsufficientCorrespondences(2, n)

    x, y = src_pts[:, 0], src_pts[:, 1]
    A = np.zeros((2 * n, 4))
    A[0::2] = np.column_stack([x, -y, np.ones(n), np.zeros(n)])
    A[1::2] = np.column_stack([y, x, np.zeros(n), np.ones(n)])
    b = dst_pts.reshape(-1)

    params, rank = _solve(A, b)
    if rank < 4:
        raise NumericalDegeneracy("Similarity system is rank deficient")

    a, s, tx, ty = params
    return np.array([
        [a, -s, tx],
        [s, a, ty],
        [0.0, 0.0, 1.0]
    ])


def _solve(A, b):
    try:
        params, _, rank, _ = np.linalg.lstsq(A, b, rcond=None)
    except np.linalg.LinAlgError as e:
        raise NumericalDegeneracy(f"Least-squares solve failed: {e}") from e
    if not np.all(np.isfinite(params)):
        raise NumericalDegeneracy("Least-squares solution is not finite")
    return params, rank


_FITTERS = {
    ModelKind.PROJECTIVE: fit_projective,
    ModelKind.AFFINE: fit_affine,
    ModelKind.SIMILARITY: fit_similarity,
}


def fit_model(kind, src_pts, dst_pts):
    """
    Fit a transform of the given kind mapping src_pts onto dst_pts.

    Raises:
        InsufficientCorrespondences: too few points for the model
        NumericalDegeneracy: the system could not be solved reliably
    """
    kind = ModelKind.coerce(kind)
    return _FITTERS[kind](as_points(src_pts), as_points(dst_pts))
