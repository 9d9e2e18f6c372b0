"""
Limiter curves psi(r) of the TVD schemes, as numpy ufuncs.

Each curve is independent of the interpolation machinery so it can be
tested on its own. A limiter that returns 0 gives upwind, 1 gives linear.
"""

import numpy as np
from numba import njit, vectorize

R_MAX = 1000.0


@vectorize(["float64(float64, float64)"])
def limited_linear(r, two_by_k):
    return max(min(two_by_k * r, 1.0), 0.0)


@vectorize(["float64(float64)"])
def van_leer(r):
    return (r + abs(r)) / (1.0 + abs(r))


@vectorize(["float64(float64)"])
def muscl(r):
    return max(min(min(2.0 * r, 0.5 * r + 0.5), 2.0), 0.0)


@vectorize(["float64(float64)"])
def ospre(r):
    return 1.5 * r * (r + 1.0) / (r * r + r + 1.0) if r > 0.0 else 0.0


@njit
def gradient_ratio_kernel(flux, phi_P, phi_N, grad_d_P, grad_d_N):
    """
    r = 2 (d . grad(phi)_C) / (phi_N - phi_P) - 1 per face and component,
    C being the upwind cell. |r| is capped where the face difference vanishes.

    phi_P, phi_N, grad_d_P, grad_d_N : ndarray of shape (n_faces, n_cmpt)
    """
    n_faces = phi_P.shape[0]
    n_cmpt = phi_P.shape[1]
    r = np.empty((n_faces, n_cmpt), dtype=np.float64)
    for f in range(n_faces):
        for c in range(n_cmpt):
            grad_f = phi_N[f, c] - phi_P[f, c]
            if flux[f] > 0.0:
                grad_cf = grad_d_P[f, c]
            else:
                grad_cf = grad_d_N[f, c]

            if abs(grad_cf) >= R_MAX * abs(grad_f):
                sign_cf = 1.0 if grad_cf >= 0.0 else -1.0
                sign_f = 1.0 if grad_f >= 0.0 else -1.0
                r[f, c] = 2.0 * R_MAX * sign_cf * sign_f - 1.0
            else:
                r[f, c] = 2.0 * grad_cf / grad_f - 1.0
    return r
