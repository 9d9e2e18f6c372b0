"""
Explicit operators: functions of the current field values returning new
fields. Nothing here mutates its arguments, so the same inputs give the
same outputs whatever order the calls are made in.
"""

import numpy as np

from fvengine.assembly.fvm import term_name
from fvengine.core.dimensions import dimArea, dimVolume
from fvengine.core.fields import SurfaceField, VolField
from fvengine.core.helpers import surface_integrate as _surface_integrate
from fvengine.core.helpers import surface_sum as _surface_sum
from fvengine.discretization.interpolation.base import expand, flux_values
from fvengine.errors import ConfigurationError


def interpolate(ctx, vf, flux=None, scheme=None):
    return ctx.schemes.interpolation(f"interpolate({vf.name})", scheme).interpolate(vf, flux)


def sn_grad(ctx, vf, scheme=None):
    return ctx.schemes.sn_grad(f"snGrad({vf.name})", scheme).sn_grad(vf)


def grad(ctx, vf, scheme=None):
    return ctx.schemes.grad(f"grad({vf.name})", scheme).grad(vf)


def surface_sum(ssf):
    """Per-cell sum of the face values of a SurfaceField."""
    mesh = ssf.mesh
    return VolField.calculated(
        f"surfaceSum({ssf.name})", mesh, _surface_sum(mesh, ssf.values), ssf.dimensions
    )


def surface_integrate(ssf):
    """Per-cell sum of the face values divided by the cell volume."""
    mesh = ssf.mesh
    return VolField.calculated(
        f"surfaceIntegrate({ssf.name})", mesh, _surface_integrate(mesh, ssf.values),
        ssf.dimensions / dimVolume,
    )


def div(ctx, flux, vf=None, scheme=None):
    """``div(ctx, flux)``: net outflow per unit volume; ``div(ctx, flux, vf)``: convection of vf."""
    if vf is None:
        if not isinstance(flux, SurfaceField):
            flux = SurfaceField("phi", ctx.mesh, flux_values(ctx.mesh, flux))
        result = surface_integrate(flux)
        result.name = f"div({flux.name})"
        return result
    key = f"div({term_name(flux, 'phi')},{vf.name})"
    return ctx.schemes.div(key, scheme).fvc_div(flux, vf)


def laplacian(ctx, gamma, vf=None, scheme=None):
    if vf is None:
        vf, gamma = gamma, 1.0
        key = f"laplacian({vf.name})"
    else:
        key = f"laplacian({term_name(gamma, 'gamma')},{vf.name})"
    return ctx.schemes.laplacian(key, scheme).fvc_laplacian(gamma, vf)


def ddt(ctx, vf, rho=None, scheme=None):
    if rho is None:
        key = f"ddt({vf.name})"
    else:
        key = f"ddt({term_name(rho, 'rho')},{vf.name})"
    return ctx.schemes.ddt(key, scheme).fvc_ddt(ctx.time, vf, rho)


def flux(ctx, U, scheme=None):
    """Face flux S_f . U_f of a vector field."""
    if U.rank != 1:
        raise ConfigurationError(f"flux needs a vector field, '{U.name}' has rank {U.rank}")
    mesh = ctx.mesh
    U_f = ctx.schemes.interpolation(f"flux({U.name})", scheme).interpolate(U).values
    values = np.einsum("fi,fi->f", mesh.vector_S_f, U_f)
    return SurfaceField(f"phi({U.name})", mesh, values, U.dimensions * dimArea)


def domain_integrate(vf):
    """Volume integral of a field over the whole mesh."""
    V = expand(vf.mesh.cell_volumes, vf.value_shape)
    return np.sum(V * vf.values, axis=0)


def kinetic_energy(U):
    """K = 0.5 |U|^2 per cell."""
    if U.rank != 1:
        raise ConfigurationError(f"kinetic_energy needs a vector field, '{U.name}' has rank {U.rank}")
    values = 0.5 * np.einsum("ci,ci->c", U.values, U.values)
    boundary = {patch: 0.5 * np.einsum("fi,fi->f", bv, bv) for patch, bv in U.boundary_field.items()}
    return VolField.calculated("K", U.mesh, values, U.dimensions ** 2, boundary)
