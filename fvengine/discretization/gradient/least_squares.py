import numpy as np
from numba import njit

from fvengine.core.helpers import as_components
from fvengine.discretization.gradient.gauss import GradScheme, grad_field
from fvengine.discretization.interpolation.base import neighbour_values
from fvengine.discretization.registry import grad_schemes

EPS = 1e-14


@njit
def least_squares_gradient_kernel(cell_faces, owner_cells, neighbor_cells, vector_d_CE,
                                  phi, phi_far):
    """
    Inverse-distance weighted least-squares gradient.

    Internal faces use the other cell; boundary faces use the face value
    (or the remote cell on coupled faces) at the end of vector_d_CE.

    phi : (n_cells, n_cmpt), phi_far : (n_faces, n_cmpt)
    """
    n_cells = phi.shape[0]
    n_cmpt = phi.shape[1]
    grad = np.zeros((n_cells, 2, n_cmpt), dtype=np.float64)

    for c in range(n_cells):
        A00 = A01 = A11 = 0.0
        b0 = np.zeros(n_cmpt)
        b1 = np.zeros(n_cmpt)

        for f in cell_faces[c]:
            if f < 0:
                break

            P = owner_cells[f]
            N = neighbor_cells[f]

            if N >= 0:
                if c == P:
                    vec0 = vector_d_CE[f, 0]
                    vec1 = vector_d_CE[f, 1]
                    other = N
                else:
                    vec0 = -vector_d_CE[f, 0]
                    vec1 = -vector_d_CE[f, 1]
                    other = P
            else:
                vec0 = vector_d_CE[f, 0]
                vec1 = vector_d_CE[f, 1]
                other = -1

            r2 = vec0 * vec0 + vec1 * vec1
            if r2 < EPS:
                continue
            w = 1.0 / r2

            A00 += w * vec0 * vec0
            A01 += w * vec0 * vec1
            A11 += w * vec1 * vec1
            for k in range(n_cmpt):
                if other >= 0:
                    du = phi[other, k] - phi[c, k]
                else:
                    du = phi_far[f, k] - phi[c, k]
                b0[k] += w * vec0 * du
                b1[k] += w * vec1 * du

        denom = A00 * A11 - A01 * A01
        if abs(denom) > EPS:
            for k in range(n_cmpt):
                grad[c, 0, k] = (A11 * b0[k] - A01 * b1[k]) / denom
                grad[c, 1, k] = (A00 * b1[k] - A01 * b0[k]) / denom

    return grad


@grad_schemes.register("leastSquares")
class LeastSquaresGrad(GradScheme):
    """Least-squares gradient over all face neighbours, boundary faces included."""

    def grad(self, vf):
        mesh = self.mesh
        grad = least_squares_gradient_kernel(
            mesh.cell_faces, mesh.owner_cells, mesh.neighbor_cells, mesh.vector_d_CE,
            as_components(vf.values, mesh.n_cells),
            as_components(neighbour_values(vf), mesh.n_faces),
        )
        return grad_field(vf, grad)
