import numpy as np

from fvengine.discretization.interpolation.base import (
    SurfaceInterpolationScheme,
    flux_values,
)
from fvengine.discretization.registry import interpolation_schemes


@interpolation_schemes.register("linear", aliases=("CD",))
class LinearInterpolation(SurfaceInterpolationScheme):
    """Distance-weighted central differencing."""

    def weights(self, vf=None, flux=None):
        return 1.0 - self.mesh.face_interp_factors


@interpolation_schemes.register("upwind", aliases=("UD",))
class UpwindInterpolation(SurfaceInterpolationScheme):
    """First-order upwind: the face takes the value of the cell the flux comes from."""

    def weights(self, vf=None, flux=None):
        F = flux_values(self.mesh, flux, scheme="upwind")
        return upwind_weights(F)


def upwind_weights(F):
    """pos0(F): 1 where the flux leaves the owner (or is zero), 0 otherwise."""
    return np.where(F >= 0.0, 1.0, 0.0)
