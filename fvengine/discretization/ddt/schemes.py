"""
Time derivative schemes.

Each scheme assembles ``ddt(rho, phi)`` integrated over the cell volume:
only the diagonal and the source are touched, the diagonal always being
positive for a positive time step.
"""

import numpy as np

from fvengine.assembly.fv_matrix import EquationMatrix
from fvengine.core.dimensions import dimTime, dimVolume, dimless
from fvengine.core.fields import VolField, as_cell_coefficient
from fvengine.discretization.interpolation.base import expand
from fvengine.discretization.registry import ddt_schemes

GREAT = 1.0e15


def _density_levels(mesh, rho, n_levels):
    """(rho, rho_0, rho_00) per cell, plain numbers repeated across levels."""
    if rho is None:
        ones = np.ones(mesh.n_cells)
        return [ones] * n_levels, dimless
    if isinstance(rho, VolField):
        levels = [rho.values, rho.old_time().values, rho.old_old_time().values]
        return levels[:n_levels], rho.dimensions
    values, dims = as_cell_coefficient(mesh, rho, "rho")
    return [values] * n_levels, dims


class DdtScheme:
    type_name = None

    def __init__(self, mesh, stream=None, schemes=None):
        self.mesh = mesh

    def _matrix(self, vf, rho_dims):
        return EquationMatrix(
            vf, rho_dims * vf.dimensions * dimVolume / dimTime, name=f"ddt({vf.name})"
        )

    def __repr__(self):
        return f"{type(self).__name__}()"


@ddt_schemes.register("Euler", aliases=("EulerImplicit",))
class EulerDdt(DdtScheme):
    """First order implicit: (rho phi - rho_0 phi_0) / dt."""

    def fvm_ddt(self, time, vf, rho=None):
        mesh = self.mesh
        r_delta_t = 1.0 / time.delta_t
        (rho_n, rho_0), rho_dims = _density_levels(mesh, rho, 2)

        eqn = self._matrix(vf, rho_dims)
        eqn.diag = r_delta_t * rho_n * mesh.cell_volumes
        eqn.source = expand(r_delta_t * rho_0 * mesh.cell_volumes, vf.value_shape) * \
            vf.old_time().values
        return eqn

    def fvc_ddt(self, time, vf, rho=None):
        (rho_n, rho_0), rho_dims = _density_levels(self.mesh, rho, 2)
        vs = vf.value_shape
        values = (expand(rho_n, vs) * vf.values - expand(rho_0, vs) * vf.old_time().values) / \
            time.delta_t
        return VolField.calculated(
            f"ddt({vf.name})", self.mesh, values, rho_dims * vf.dimensions / dimTime
        )


@ddt_schemes.register("backward")
class BackwardDdt(DdtScheme):
    """
    Second order implicit, three time levels with variable time step.
    Until two old-time levels exist it is identical to Euler.
    """

    def coefficients(self, time, vf):
        delta_t = time.delta_t
        delta_t0 = time.delta_t0 if vf.n_old_times() >= 2 else GREAT
        coefft = 1.0 + delta_t / (delta_t + delta_t0)
        coefft00 = delta_t * delta_t / (delta_t0 * (delta_t + delta_t0))
        coefft0 = coefft + coefft00
        return coefft, coefft0, coefft00

    def fvm_ddt(self, time, vf, rho=None):
        mesh = self.mesh
        r_delta_t = 1.0 / time.delta_t
        coefft, coefft0, coefft00 = self.coefficients(time, vf)
        (rho_n, rho_0, rho_00), rho_dims = _density_levels(mesh, rho, 3)

        vs = vf.value_shape
        V = mesh.cell_volumes
        eqn = self._matrix(vf, rho_dims)
        eqn.diag = coefft * r_delta_t * rho_n * V
        eqn.source = expand(r_delta_t * V, vs) * (
            coefft0 * expand(rho_0, vs) * vf.old_time().values
            - coefft00 * expand(rho_00, vs) * vf.old_old_time().values
        )
        return eqn

    def fvc_ddt(self, time, vf, rho=None):
        coefft, coefft0, coefft00 = self.coefficients(time, vf)
        (rho_n, rho_0, rho_00), rho_dims = _density_levels(self.mesh, rho, 3)
        vs = vf.value_shape
        values = (
            coefft * expand(rho_n, vs) * vf.values
            - coefft0 * expand(rho_0, vs) * vf.old_time().values
            + coefft00 * expand(rho_00, vs) * vf.old_old_time().values
        ) / time.delta_t
        return VolField.calculated(
            f"ddt({vf.name})", self.mesh, values, rho_dims * vf.dimensions / dimTime
        )


@ddt_schemes.register("steadyState")
class SteadyStateDdt(DdtScheme):
    """No time derivative: an empty matrix with the dimensions of one."""

    def fvm_ddt(self, time, vf, rho=None):
        _, rho_dims = _density_levels(self.mesh, rho, 1)
        return self._matrix(vf, rho_dims)

    def fvc_ddt(self, time, vf, rho=None):
        _, rho_dims = _density_levels(self.mesh, rho, 1)
        return VolField.calculated(
            f"ddt({vf.name})", self.mesh, np.zeros_like(vf.values),
            rho_dims * vf.dimensions / dimTime,
        )
