"""
Gauss laplacian: sum_f Gamma_f |S_f| snGrad_f.

Implicit part (over-relaxed, Moukalled 8.6.4):
    upper = lower = Gamma_f |S_f| delta_f,   diag = -sum(upper)
boundary faces through the gradient coefficients of the boundary condition:
    internal_coeffs =  Gamma_b |S_b| * gradientInternalCoeffs
    boundary_coeffs = -Gamma_b |S_b| * gradientBoundaryCoeffs
The non-orthogonal correction Gamma_f |S_f| k_f . grad(phi)_f enters the
source only.
"""

from fvengine.assembly.fv_matrix import EquationMatrix
from fvengine.core.dimensions import dimArea, dimLength
from fvengine.core.fields import VolField, as_face_coefficient
from fvengine.core.helpers import surface_integrate, surface_sum
from fvengine.discretization.diffusion.sn_grad import CorrectedSnGrad
from fvengine.discretization.interpolation.base import coupled_mask, expand
from fvengine.discretization.interpolation.schemes import LinearInterpolation
from fvengine.discretization.registry import (
    interpolation_schemes,
    laplacian_schemes,
    sn_grad_schemes,
)
from fvengine.errors import ConfigurationError


@laplacian_schemes.register("Gauss")
class GaussLaplacian:
    """``Gauss <interpolation> <snGrad>``, e.g. ``Gauss linear corrected``."""

    def __init__(self, mesh, stream=None, schemes=None):
        self.mesh = mesh
        self.schemes = schemes
        if stream is None or stream.eof():
            self.interpolation = LinearInterpolation(mesh)
            self.sn_grad_scheme = CorrectedSnGrad(mesh, schemes=schemes)
            return
        self.interpolation = interpolation_schemes.new(mesh, stream, schemes=schemes)
        if stream.eof():
            raise ConfigurationError(
                f"Gauss laplacian '{stream.source}' needs an snGrad scheme, "
                f"e.g. 'Gauss linear corrected'"
            )
        self.sn_grad_scheme = sn_grad_schemes.new(mesh, stream, schemes=schemes)

    def gamma_face(self, gamma):
        """Per-face diffusivity and its dimensions."""
        if isinstance(gamma, VolField):
            if gamma.rank != 0:
                raise ConfigurationError(
                    f"Only scalar diffusivities are supported, '{gamma.name}' has rank {gamma.rank}"
                )
            return self.interpolation.interpolate(gamma).values, gamma.dimensions
        values, dims = as_face_coefficient(self.mesh, gamma)
        if values.ndim != 1:
            raise ConfigurationError("Only scalar diffusivities are supported")
        return values, dims

    def fvm_laplacian(self, gamma, vf):
        mesh = self.mesh
        gamma_f, gamma_dims = self.gamma_face(gamma)
        gamma_mag_sf = gamma_f * mesh.face_areas
        delta = self.sn_grad_scheme.delta_coeffs(vf)

        eqn = EquationMatrix(
            vf, gamma_dims * vf.dimensions * dimArea / dimLength, name=f"laplacian({vf.name})"
        )
        n_int = mesh.n_internal
        eqn.upper[:] = gamma_mag_sf[:n_int] * delta[:n_int]
        eqn.lower[:] = eqn.upper
        eqn.neg_sum_diag()

        vs = vf.value_shape
        for patch, bc in vf.boundary.items():
            faces = mesh.patch_faces(patch)
            if len(faces) == 0:
                continue
            g = expand(gamma_mag_sf[faces], vs)
            eqn.internal_coeffs[patch] = g * bc.gradient_internal_coeffs(vf, delta[faces])
            eqn.boundary_coeffs[patch] = -g * bc.gradient_boundary_coeffs(vf, delta[faces])

        if self.sn_grad_scheme.corrected():
            corr = self.sn_grad_scheme.correction(vf)
            corr[~coupled_mask(vf)] = 0.0
            face_flux = expand(gamma_mag_sf, vs) * corr
            eqn.source -= surface_sum(mesh, face_flux)
            eqn.face_flux_correction = face_flux
        return eqn

    def fvc_laplacian(self, gamma, vf):
        """Explicit laplacian: surface integral of Gamma_f |S_f| snGrad_f."""
        mesh = self.mesh
        gamma_f, gamma_dims = self.gamma_face(gamma)
        sn = self.sn_grad_scheme.sn_grad(vf)
        face_flux = expand(gamma_f * mesh.face_areas, vf.value_shape) * sn.values
        return VolField.calculated(
            f"laplacian({vf.name})", mesh, surface_integrate(mesh, face_flux),
            gamma_dims * sn.dimensions / dimLength,
        )

    def __repr__(self):
        return f"GaussLaplacian({self.interpolation!r}, {self.sn_grad_scheme!r})"
