import numpy as np
from numba import njit

ROUND_OFF = 1.0e-12


def as_components(values, n):
    """View an (n, *value_shape) array as a contiguous (n, n_components) float array."""
    return np.ascontiguousarray(np.asarray(values, dtype=np.float64).reshape(n, -1))


@njit(parallel=False)
def surface_sum_kernel(owner_cells, neighbor_cells, n_internal, face_values, n_cells):
    """
    Sum face contributions into cells: owner += value, neighbour -= value.

    face_values : (n_faces, n_cmpt) flux-like quantity oriented along S_f.
    Boundary faces contribute to their owner only.
    """
    n_faces = face_values.shape[0]
    n_cmpt = face_values.shape[1]
    result = np.zeros((n_cells, n_cmpt), dtype=np.float64)

    for f in range(n_internal):
        P = owner_cells[f]
        N = neighbor_cells[f]
        for c in range(n_cmpt):
            result[P, c] += face_values[f, c]
            result[N, c] -= face_values[f, c]

    for f in range(n_internal, n_faces):
        P = owner_cells[f]
        for c in range(n_cmpt):
            result[P, c] += face_values[f, c]

    return result


@njit(parallel=False)
def neg_sum_diag_kernel(owner_cells, neighbor_cells, lower, upper, n_cells):
    """diag[P] -= lower[f], diag[N] -= upper[f] for every internal face."""
    diag = np.zeros(n_cells, dtype=np.float64)
    for f in range(lower.shape[0]):
        diag[owner_cells[f]] -= lower[f]
        diag[neighbor_cells[f]] -= upper[f]
    return diag


@njit(parallel=False)
def sum_mag_off_diag_kernel(owner_cells, neighbor_cells, lower, upper, n_cells):
    sum_off = np.zeros(n_cells, dtype=np.float64)
    for f in range(lower.shape[0]):
        sum_off[owner_cells[f]] += abs(upper[f])
        sum_off[neighbor_cells[f]] += abs(lower[f])
    return sum_off


@njit(parallel=False)
def compute_residual(data, indices, indptr, x, b):
    """
    Compute residual field r = b - A @ x and its L1 norm.

    Parameters
    ----------
    data, indices, indptr : CSR matrix format (A)
    x : ndarray, solution vector
    b : ndarray, right-hand side vector
    """
    n = b.shape[0]
    res_field = np.zeros(n, dtype=np.float64)
    res_sum = 0.0
    for i in range(n):
        Ax_i = 0.0
        for j in range(indptr[i], indptr[i + 1]):
            Ax_i += data[j] * x[indices[j]]
        r_i = b[i] - Ax_i
        res_field[i] = r_i
        res_sum += abs(r_i)
    return res_sum, res_field


def norm_factor(A, x, b):
    """
    OpenFOAM normFactor: sum(|Ax - A xRef| + |b - A xRef|) + small, xRef = mean(x).

    A floor at round-off level of |Ax| + |b| keeps the residual of a uniform
    solution near zero instead of round-off divided by round-off.
    """
    Ax = A @ x
    Ax_ref = np.asarray(A.sum(axis=1)).ravel() * np.mean(x)
    floor = ROUND_OFF * np.sum(np.abs(Ax) + np.abs(b))
    return np.sum(np.abs(Ax - Ax_ref) + np.abs(b - Ax_ref)) + floor + 1.0e-20


def normalised_residual(A, x, b):
    """OpenFOAM-style normalised residual sum|b - Ax| / normFactor."""
    if b.shape[0] == 0:
        return 0.0
    A = A.tocsr()
    res_sum, _ = compute_residual(
        A.data.astype(np.float64), A.indices.astype(np.int64),
        A.indptr.astype(np.int64), np.ascontiguousarray(x, dtype=np.float64),
        np.ascontiguousarray(b, dtype=np.float64),
    )
    return res_sum / norm_factor(A, x, b)


def surface_sum(mesh, face_values):
    """Per-cell sum of face values, (n_faces, *value_shape) -> (n_cells, *value_shape)."""
    face_values = np.asarray(face_values, dtype=np.float64)
    summed = surface_sum_kernel(
        mesh.owner_cells, mesh.neighbor_cells, mesh.n_internal,
        as_components(face_values, mesh.n_faces), mesh.n_cells,
    )
    return summed.reshape((mesh.n_cells,) + face_values.shape[1:])


def surface_integrate(mesh, face_values):
    """surface_sum divided by the cell volumes."""
    summed = surface_sum(mesh, face_values)
    return summed / mesh.cell_volumes.reshape((-1,) + (1,) * (summed.ndim - 1))
