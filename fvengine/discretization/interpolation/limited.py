"""
TVD limited schemes: a blend of linear and upwind weights

    w = psi * w_linear + (1 - psi) * w_upwind

with psi = limiter(r) recomputed from the current field on every call.
For vector and tensor fields the most restrictive component limits the face.
"""

import numpy as np

from fvengine.core.helpers import as_components
from fvengine.discretization.gradient.gauss import gradient_scheme
from fvengine.discretization.interpolation import limiters
from fvengine.discretization.interpolation.base import (
    SurfaceInterpolationScheme,
    coupled_mask,
    flux_values,
    neighbour_gradient,
    neighbour_values,
)
from fvengine.discretization.interpolation.schemes import upwind_weights
from fvengine.discretization.registry import interpolation_schemes
from fvengine.errors import ConfigurationError

SMALL = 1.0e-15


class LimitedScheme(SurfaceInterpolationScheme):
    def limiter_curve(self, r):
        raise NotImplementedError

    def limiter(self, vf, flux):
        """psi per face, 1 on faces without a neighbour cell."""
        mesh = self.mesh
        F = flux_values(mesh, flux, scheme=self.type_name)
        grad = gradient_scheme(mesh, self.schemes, f"grad({vf.name})").grad(vf).values

        P = mesh.owner_cells
        d = mesh.vector_d_CE
        grad_d_P = np.einsum("fj,fj...->f...", d, grad[P])
        grad_d_N = np.einsum("fj,fj...->f...", d, neighbour_gradient(vf, grad))

        n = mesh.n_faces
        r = limiters.gradient_ratio_kernel(
            F,
            as_components(vf.values[P], n),
            as_components(neighbour_values(vf), n),
            as_components(grad_d_P, n),
            as_components(grad_d_N, n),
        )
        psi = self.limiter_curve(r).min(axis=1)
        psi[~coupled_mask(vf)] = 1.0
        return psi

    def weights(self, vf, flux=None):
        F = flux_values(self.mesh, flux, scheme=self.type_name)
        psi = self.limiter(vf, F)
        w_linear = 1.0 - self.mesh.face_interp_factors
        return psi * w_linear + (1.0 - psi) * upwind_weights(F)


@interpolation_schemes.register("limitedLinear")
class LimitedLinear(LimitedScheme):
    """
    Linear limited towards upwind in steep gradients; the coefficient
    k in [0, 1] sets the strength (``limitedLinear 1``).
    """

    def __init__(self, mesh, stream=None, schemes=None):
        super().__init__(mesh, stream, schemes)
        if stream is None or stream.eof():
            raise ConfigurationError(
                "limitedLinear needs a limiter coefficient, e.g. 'limitedLinear 1'"
            )
        self.k = stream.read_scalar("limitedLinear coefficient")
        if not 0.0 <= self.k <= 1.0:
            raise ConfigurationError(
                f"limitedLinear coefficient is specified as {self.k} "
                f"but should be >= 0 && <= 1"
            )
        self.two_by_k = 2.0 / max(self.k, SMALL)

    def limiter_curve(self, r):
        return limiters.limited_linear(r, self.two_by_k)

    def __repr__(self):
        return f"LimitedLinear(k={self.k})"


@interpolation_schemes.register("vanLeer")
class VanLeer(LimitedScheme):
    def limiter_curve(self, r):
        return limiters.van_leer(r)


@interpolation_schemes.register("MUSCL")
class MUSCL(LimitedScheme):
    def limiter_curve(self, r):
        return limiters.muscl(r)


@interpolation_schemes.register("OSPRE")
class OSPRE(LimitedScheme):
    def limiter_curve(self, r):
        return limiters.ospre(r)
