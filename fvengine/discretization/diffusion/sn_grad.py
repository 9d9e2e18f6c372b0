"""
Surface-normal gradient schemes.

    snGrad_f = delta_f * (phi_N - phi_P) + correction_f

The implicit part uses the over-relaxed delta coefficients of the mesh
(delta = 1 / (n . d)); the explicit non-orthogonal correction is
k . grad(phi)_f with k = T_f / |S_f| the correction vector of the face.
"""

import numpy as np

from fvengine.core.dimensions import dimLength
from fvengine.core.fields import SurfaceField
from fvengine.discretization.gradient.gauss import gradient_scheme
from fvengine.discretization.interpolation.base import (
    coupled_mask,
    expand,
    neighbour_gradient,
    neighbour_values,
)
from fvengine.discretization.registry import sn_grad_schemes, SchemeStream
from fvengine.errors import ConfigurationError

SMALL = 1.0e-15


class SnGradScheme:
    type_name = None

    def __init__(self, mesh, stream=None, schemes=None):
        self.mesh = mesh
        self.schemes = schemes

    def delta_coeffs(self, vf=None):
        return self.mesh.delta_coeffs

    def corrected(self):
        return False

    def correction(self, vf):
        return None

    def uncorrected_sn_grad(self, vf):
        """delta (phi_N - phi_P) on internal and coupled faces, boundary snGrad elsewhere."""
        mesh = self.mesh
        delta = expand(self.delta_coeffs(vf), vf.value_shape)
        sn = delta * (neighbour_values(vf) - vf.values[mesh.owner_cells])
        for patch, bc in vf.boundary.items():
            if not bc.coupled:
                sn[mesh.patch_faces(patch)] = bc.sn_grad(vf)
        return sn

    def sn_grad(self, vf):
        sn = self.uncorrected_sn_grad(vf)
        if self.corrected():
            mask = coupled_mask(vf)
            sn[mask] += self.correction(vf)[mask]
        return SurfaceField(f"snGrad({vf.name})", self.mesh, sn, vf.dimensions / dimLength)

    def __repr__(self):
        return f"{type(self).__name__}()"


def full_gradient_correction(mesh, schemes, vf):
    """k_f . (linear interpolate of grad(phi)) on internal and coupled faces, zero elsewhere."""
    grad = gradient_scheme(mesh, schemes, f"grad({vf.name})").grad(vf).values
    w = expand(1.0 - mesh.face_interp_factors, grad.shape[1:])
    grad_f = w * grad[mesh.owner_cells] + (1.0 - w) * neighbour_gradient(vf, grad)
    corr = np.einsum("fj,fj...->f...", mesh.nonorth_correction_vectors, grad_f)
    corr[~coupled_mask(vf)] = 0.0
    return corr


@sn_grad_schemes.register("corrected")
class CorrectedSnGrad(SnGradScheme):
    def corrected(self):
        return not self.mesh.orthogonal

    def correction(self, vf):
        return full_gradient_correction(self.mesh, self.schemes, vf)


@sn_grad_schemes.register("uncorrected")
class UncorrectedSnGrad(SnGradScheme):
    pass


@sn_grad_schemes.register("orthogonal")
class OrthogonalSnGrad(SnGradScheme):
    """Plain 1/|d| deltas, for meshes known to be orthogonal."""

    def delta_coeffs(self, vf=None):
        return 1.0 / np.linalg.norm(self.mesh.vector_d_CE, axis=1)


@sn_grad_schemes.register("limited")
class LimitedSnGrad(SnGradScheme):
    """
    Corrected snGrad with the correction limited to ``psi`` times the
    uncorrected gradient: ``limited 0.5`` or ``limited corrected 0.5``.
    psi = 0 is uncorrected, psi = 1 fully corrected.
    """

    def __init__(self, mesh, stream=None, schemes=None):
        super().__init__(mesh, stream, schemes)
        stream = SchemeStream.coerce(stream)
        if stream.eof():
            raise ConfigurationError("limited snGrad needs a limit coefficient, e.g. 'limited 0.5'")
        if stream.peek() == "corrected":
            stream.read_word()
        self.limit_coeff = stream.read_scalar("limited snGrad coefficient")
        if not 0.0 <= self.limit_coeff <= 1.0:
            raise ConfigurationError(
                f"limitCoeff is specified as {self.limit_coeff} but should be >= 0 && <= 1"
            )

    def corrected(self):
        return self.limit_coeff > 0.0 and not self.mesh.orthogonal

    def correction(self, vf):
        corr = full_gradient_correction(self.mesh, self.schemes, vf)
        if self.limit_coeff >= 1.0:
            return corr
        uncorrected = self.uncorrected_sn_grad(vf)
        axes = tuple(range(1, corr.ndim))
        mag_corr = np.sqrt(np.sum(corr ** 2, axis=axes)) if axes else np.abs(corr)
        total = uncorrected + corr
        mag_total = np.sqrt(np.sum(total ** 2, axis=axes)) if axes else np.abs(total)
        limiter = np.minimum(
            self.limit_coeff * mag_total / ((1.0 - self.limit_coeff) * mag_corr + SMALL), 1.0
        )
        return expand(limiter, vf.value_shape) * corr

    def __repr__(self):
        return f"LimitedSnGrad(psi={self.limit_coeff})"
