import numpy as np
import pytest

from fvengine.assembly import fvm
from fvengine.config import SolverControls
from fvengine.core.dimensions import (
    DimensionedScalar,
    dimDensity,
    dimless,
    dimTemperature,
    dimTime,
    dimVolume,
)
from fvengine.core.fields import VolField
from fvengine.core.time import TimeState
from fvengine.discretization.registry import ddt_schemes
from fvengine.errors import ConfigurationError

DIRECT = SolverControls(solver="direct", tolerance=1e-14)

T0 = np.array([1.0, 2.0, 3.0, 4.0, 5.0])


def decaying_field(mesh):
    return VolField("T", mesh, T0, dimTemperature, boundary={
        "left": "zeroGradient", "right": "zeroGradient",
    })


def test_euler_coefficients(line_mesh, make_ctx):
    ctx = make_ctx(line_mesh, time=TimeState(delta_t=0.5))
    T = ctx.register(decaying_field(line_mesh))
    ctx.advance_time()
    T.assign(np.zeros(5))
    eqn = fvm.ddt(ctx, T)
    assert np.allclose(eqn.diag, 2.0)
    assert np.allclose(eqn.source, 2.0 * T0)
    assert np.array_equal(eqn.upper, np.zeros(line_mesh.n_internal))
    assert eqn.dimensions == dimTemperature * dimVolume / dimTime


def test_backward_falls_back_to_euler(line_mesh, make_ctx):
    ctx = make_ctx(line_mesh, time=TimeState(delta_t=0.5))
    T = ctx.register(decaying_field(line_mesh))
    ctx.advance_time()
    assert T.n_old_times() == 1
    euler = fvm.ddt(ctx, T)
    backward = fvm.ddt(ctx, T, scheme="backward")
    assert np.allclose(backward.diag, euler.diag, rtol=1e-12)
    assert np.allclose(backward.source, euler.source, rtol=1e-12)


def test_backward_coefficients(line_mesh, make_ctx):
    ctx = make_ctx(line_mesh, time=TimeState(delta_t=0.5))
    T = ctx.register(decaying_field(line_mesh))
    ctx.advance_time()
    T.assign(2.0 * T0)
    ctx.advance_time()
    assert T.n_old_times() == 2

    scheme = ctx.schemes.ddt("ddt(T)", "backward")
    assert scheme.coefficients(ctx.time, T) == pytest.approx((1.5, 2.0, 0.5))
    eqn = fvm.ddt(ctx, T, scheme="backward")
    assert np.allclose(eqn.diag, 1.5 / 0.5)
    assert np.allclose(eqn.source, (2.0 * 2.0 * T0 - 0.5 * T0) / 0.5)


def test_backward_variable_time_step(line_mesh, make_ctx):
    ctx = make_ctx(line_mesh, time=TimeState(delta_t=1.0))
    T = ctx.register(decaying_field(line_mesh))
    ctx.advance_time()
    ctx.advance_time()
    ctx.time.set_delta_t(0.5)
    scheme = ctx.schemes.ddt("ddt(T)", "backward")
    assert scheme.coefficients(ctx.time, T) == pytest.approx((4.0 / 3.0, 1.5, 1.0 / 6.0))


def test_at_most_two_old_levels(line_mesh, make_ctx):
    ctx = make_ctx(line_mesh)
    T = ctx.register(decaying_field(line_mesh))
    for _ in range(4):
        ctx.advance_time()
    assert T.n_old_times() == 2


def test_steady_state_is_empty(line_mesh, make_ctx):
    ctx = make_ctx(line_mesh, schemes={"ddtSchemes": {"default": "steadyState"}})
    T = decaying_field(line_mesh)
    eqn = fvm.ddt(ctx, T)
    assert np.array_equal(eqn.diag, np.zeros(5))
    assert np.array_equal(eqn.source, np.zeros(5))
    assert eqn.dimensions == dimTemperature * dimVolume / dimTime


def test_density_weighted_euler(line_mesh, make_ctx):
    ctx = make_ctx(line_mesh, time=TimeState(delta_t=0.5))
    T = ctx.register(decaying_field(line_mesh))
    rho = ctx.register(VolField.uniform("rho", line_mesh, 2.0, dimDensity, boundary={
        "left": "zeroGradient", "right": "zeroGradient",
    }))
    ctx.advance_time()
    rho.assign(np.full(5, 4.0))
    eqn = fvm.ddt(ctx, T, rho)
    assert np.allclose(eqn.diag, 4.0 / 0.5)
    assert np.allclose(eqn.source, 2.0 / 0.5 * T0)
    assert eqn.dimensions == dimDensity * dimTemperature * dimVolume / dimTime

    constant = fvm.ddt(ctx, T, DimensionedScalar("rho", dimDensity, 3.0))
    assert np.allclose(constant.diag, 3.0 / 0.5)


def test_ddt_registry():
    assert {"Euler", "backward", "steadyState"} <= set(ddt_schemes.names())
    with pytest.raises(ConfigurationError, match="Unknown ddt type 'CrankNicolson'"):
        ddt_schemes.lookup("CrankNicolson")


def test_non_positive_time_step():
    with pytest.raises(ConfigurationError, match="positive"):
        TimeState(delta_t=0.0)
    with pytest.raises(ConfigurationError, match="positive"):
        TimeState().set_delta_t(-1.0)


def decay_error(line_mesh, make_ctx, scheme, delta_t):
    """Max error at t = 1 of dT/dt = -T integrated with ``scheme``."""
    ctx = make_ctx(
        line_mesh, schemes={"ddtSchemes": {"default": scheme}}, time=TimeState(delta_t=delta_t)
    )
    T = ctx.register(decaying_field(line_mesh))
    k = DimensionedScalar("k", dimless / dimTime, 1.0)
    for _ in range(int(round(1.0 / delta_t))):
        ctx.advance_time()
        eqn = fvm.ddt(ctx, T) + fvm.Sp(k, T)
        eqn.solve(DIRECT)
    assert ctx.time.value == pytest.approx(1.0)
    return np.max(np.abs(T.values - np.exp(-1.0) * T0))


def test_euler_first_order(line_mesh, make_ctx):
    ratio = decay_error(line_mesh, make_ctx, "Euler", 0.1) / decay_error(line_mesh, make_ctx, "Euler", 0.05)
    assert 1.8 < ratio < 2.2


def test_backward_second_order(line_mesh, make_ctx):
    coarse = decay_error(line_mesh, make_ctx, "backward", 0.1)
    fine = decay_error(line_mesh, make_ctx, "backward", 0.05)
    assert coarse / fine > 3.0
    assert coarse < decay_error(line_mesh, make_ctx, "Euler", 0.1)
