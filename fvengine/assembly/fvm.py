"""
Implicit operators. Every function returns a fresh EquationMatrix for ``vf``
and leaves the fields and the mesh untouched.

Schemes are taken from the context scheme table under the OpenFOAM term
keys, e.g. ``ddt(rho,T)``, ``div(phi,T)`` and ``laplacian(DT,T)``; a
``scheme`` string overrides the table for one call.
"""

import numpy as np

from fvengine.assembly.fv_matrix import EquationMatrix
from fvengine.core.dimensions import DimensionedScalar, dimVolume
from fvengine.core.fields import SurfaceField, VolField, as_cell_coefficient
from fvengine.discretization.interpolation.base import expand
from fvengine.errors import ConfigurationError, TopologyMismatch


def term_name(obj, fallback):
    if isinstance(obj, (VolField, SurfaceField, DimensionedScalar)):
        return obj.name
    return fallback


def ddt(ctx, vf, rho=None, scheme=None):
    if rho is None:
        key = f"ddt({vf.name})"
    else:
        key = f"ddt({term_name(rho, 'rho')},{vf.name})"
    return ctx.schemes.ddt(key, scheme).fvm_ddt(ctx.time, vf, rho)


def div(ctx, flux, vf, scheme=None):
    key = f"div({term_name(flux, 'phi')},{vf.name})"
    return ctx.schemes.div(key, scheme).fvm_div(flux, vf)


def laplacian(ctx, gamma, vf=None, scheme=None):
    """``laplacian(ctx, gamma, vf)``, or ``laplacian(ctx, vf)`` for unit diffusivity."""
    if vf is None:
        vf, gamma = gamma, 1.0
        key = f"laplacian({vf.name})"
    else:
        key = f"laplacian({term_name(gamma, 'gamma')},{vf.name})"
    return ctx.schemes.laplacian(key, scheme).fvm_laplacian(gamma, vf)


def _scalar_coefficient(mesh, coeff, name):
    values, dims = as_cell_coefficient(mesh, coeff, name)
    if values.ndim != 1:
        raise ConfigurationError(
            f"{name} coefficient must be scalar per cell, got shape {values.shape[1:]}"
        )
    return values, dims


def Sp(sp, vf):
    """Implicit linear source ``sp * vf``: diag += V sp."""
    mesh = vf.mesh
    values, dims = _scalar_coefficient(mesh, sp, "Sp")
    eqn = EquationMatrix(vf, dims * vf.dimensions * dimVolume, name=f"Sp({vf.name})")
    eqn.diag += mesh.cell_volumes * values
    return eqn


def Su(su, vf):
    """Explicit source: source -= V su."""
    mesh = vf.mesh
    if isinstance(su, VolField):
        if su.value_shape != vf.value_shape:
            raise TopologyMismatch(
                f"Source '{su.name}' has value shape {su.value_shape}, "
                f"field '{vf.name}' has {vf.value_shape}"
            )
        values, dims = su.values, su.dimensions
    elif isinstance(su, DimensionedScalar):
        values, dims = np.full(vf.values.shape, su.value), su.dimensions
    else:
        values, dims = as_cell_coefficient(mesh, su, "Su")
        values = np.broadcast_to(expand(values, vf.value_shape), vf.values.shape)

    eqn = EquationMatrix(vf, dims * dimVolume, name=f"Su({vf.name})")
    eqn.source -= expand(mesh.cell_volumes, vf.value_shape) * values
    return eqn


def SuSp(susp, vf):
    """
    Linear source ``susp * vf``, implicit where the coefficient is positive
    and explicit (with the current field value) where it is negative.
    """
    mesh = vf.mesh
    values, dims = _scalar_coefficient(mesh, susp, "SuSp")
    V = mesh.cell_volumes
    eqn = EquationMatrix(vf, dims * vf.dimensions * dimVolume, name=f"SuSp({vf.name})")
    eqn.diag += V * np.maximum(values, 0.0)
    eqn.source -= expand(V * np.minimum(values, 0.0), vf.value_shape) * vf.values
    return eqn
