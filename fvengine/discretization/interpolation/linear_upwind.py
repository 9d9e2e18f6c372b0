import numpy as np

from fvengine.discretization.gradient.gauss import gradient_scheme
from fvengine.discretization.interpolation.base import (
    SurfaceInterpolationScheme,
    coupled_mask,
    expand,
    flux_values,
    neighbour_gradient,
)
from fvengine.discretization.interpolation.schemes import upwind_weights
from fvengine.discretization.registry import interpolation_schemes


@interpolation_schemes.register("linearUpwind")
class LinearUpwindInterpolation(SurfaceInterpolationScheme):
    """
    Upwind weights plus the explicit second-order correction

        phi_f = phi_C + (x_f - x_C) . grad(phi)_C

    where C is the upwind cell. An optional gradient key
    (``linearUpwind grad(U)``) selects the gradient scheme; otherwise
    ``grad(<field>)`` is looked up.
    """

    def __init__(self, mesh, stream=None, schemes=None):
        super().__init__(mesh, stream, schemes)
        self.grad_key = None
        if stream is not None and not stream.eof() and stream.peek().startswith("grad("):
            self.grad_key = stream.read_word("gradient scheme")

    def weights(self, vf=None, flux=None):
        return upwind_weights(flux_values(self.mesh, flux, scheme="linearUpwind"))

    def corrected(self):
        return True

    def correction(self, vf, flux=None):
        mesh = self.mesh
        F = flux_values(mesh, flux, scheme="linearUpwind")
        key = self.grad_key or f"grad({vf.name})"
        grad = gradient_scheme(mesh, self.schemes, key).grad(vf).values

        P = mesh.owner_cells
        grad_P = grad[P]
        grad_N = neighbour_gradient(vf, grad)

        # x_f - x_N = (x_f - x_P) - d on internal and coupled faces
        r_P = mesh.face_centers - mesh.cell_centers[P]
        r_N = r_P - mesh.vector_d_CE

        upwind = expand(F >= 0.0, grad.shape[1:])
        grad_C = np.where(upwind, grad_P, grad_N)
        r_C = np.where((F >= 0.0)[:, None], r_P, r_N)

        corr = np.einsum("fj,fj...->f...", r_C, grad_C)
        corr[~coupled_mask(vf)] = 0.0
        return corr
