"""
Gauss convection: sum_f F_f phi_f with phi_f from an interpolation scheme.

With owner weights w from the interpolation scheme,

    lower = -w F,  upper = lower + F,  diag = -sum(off-diagonals)

boundary faces through the value coefficients of the boundary condition:

    internal_coeffs =  F_b * valueInternalCoeffs
    boundary_coeffs = -F_b * valueBoundaryCoeffs

An explicit correction of the interpolation scheme (linearUpwind) goes to
the source. With upwind weights the matrix is an M-matrix.
"""

from fvengine.assembly.fv_matrix import EquationMatrix
from fvengine.core.dimensions import dimless, dimVolume
from fvengine.core.fields import SurfaceField, VolField
from fvengine.core.helpers import surface_integrate, surface_sum
from fvengine.discretization.interpolation.base import coupled_mask, expand, flux_values
from fvengine.discretization.registry import div_schemes, interpolation_schemes
from fvengine.errors import ConfigurationError


def flux_dimensions(flux):
    return flux.dimensions if isinstance(flux, SurfaceField) else dimless


@div_schemes.register("Gauss")
class GaussConvection:
    """``Gauss <interpolation>``, e.g. ``Gauss limitedLinear 1``."""

    def __init__(self, mesh, stream=None, schemes=None):
        self.mesh = mesh
        self.schemes = schemes
        if stream is None or stream.eof():
            raise ConfigurationError(
                "Gauss convection needs an interpolation scheme, e.g. 'Gauss upwind'"
            )
        self.interpolation = interpolation_schemes.new(mesh, stream, schemes=schemes)

    def fvm_div(self, flux, vf):
        mesh = self.mesh
        F = flux_values(mesh, flux, scheme="Gauss convection")
        w = self.interpolation.weights(vf, F)

        eqn = EquationMatrix(
            vf, flux_dimensions(flux) * vf.dimensions, name=f"div({vf.name})"
        )
        n_int = mesh.n_internal
        eqn.lower[:] = -w[:n_int] * F[:n_int]
        eqn.upper[:] = eqn.lower + F[:n_int]
        eqn.neg_sum_diag()

        vs = vf.value_shape
        for patch, bc in vf.boundary.items():
            faces = mesh.patch_faces(patch)
            if len(faces) == 0:
                continue
            Fb = expand(F[faces], vs)
            eqn.internal_coeffs[patch] = Fb * bc.value_internal_coeffs(vf, w[faces])
            eqn.boundary_coeffs[patch] = -Fb * bc.value_boundary_coeffs(vf, w[faces])

        if self.interpolation.corrected():
            corr = self.interpolation.correction(vf, F)
            corr[~coupled_mask(vf)] = 0.0
            face_flux = expand(F, vs) * corr
            eqn.source -= surface_sum(mesh, face_flux)
            eqn.face_flux_correction = face_flux
        return eqn

    def face_flux(self, flux, vf):
        F = flux_values(self.mesh, flux, scheme="Gauss convection")
        face = self.interpolation.interpolate(vf, F).values
        return expand(F, vf.value_shape) * face

    def fvc_div(self, flux, vf):
        mesh = self.mesh
        values = surface_integrate(mesh, self.face_flux(flux, vf))
        return VolField.calculated(
            f"div({vf.name})", mesh, values,
            flux_dimensions(flux) * vf.dimensions / dimVolume,
        )

    def __repr__(self):
        return f"GaussConvection({self.interpolation!r})"


@div_schemes.register("bounded")
class BoundedConvection:
    """
    ``bounded Gauss <interpolation>``: removes the continuity error
    ``div(F) * phi`` implicitly, for steady or not yet converged fluxes.
    """

    def __init__(self, mesh, stream=None, schemes=None):
        self.mesh = mesh
        if stream is None or stream.eof():
            raise ConfigurationError("bounded needs a convection scheme, e.g. 'bounded Gauss upwind'")
        self.scheme = div_schemes.new(mesh, stream, schemes=schemes)

    def fvm_div(self, flux, vf):
        mesh = self.mesh
        eqn = self.scheme.fvm_div(flux, vf)
        F = flux_values(mesh, flux, scheme="bounded")
        eqn.diag -= surface_sum(mesh, F)
        return eqn

    def fvc_div(self, flux, vf):
        mesh = self.mesh
        result = self.scheme.fvc_div(flux, vf)
        F = flux_values(mesh, flux, scheme="bounded")
        div_flux = expand(surface_integrate(mesh, F), vf.value_shape)
        result.values -= div_flux * vf.values
        return result

    def __repr__(self):
        return f"BoundedConvection({self.scheme!r})"

