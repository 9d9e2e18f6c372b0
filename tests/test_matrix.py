import numpy as np
import pytest

from fvengine.assembly import fvm
from fvengine.config import SolverControls
from fvengine.core.dimensions import (
    DimensionedScalar,
    dimless,
    dimTemperature,
    dimTime,
    dimVolume,
)
from fvengine.core.fields import VolField
from fvengine.errors import ConfigurationError, TopologyMismatch

DIRECT = SolverControls(solver="direct", tolerance=1e-12)

rate = DimensionedScalar("k", dimless / dimTime, 2.0)


def conduction_field(mesh, initial=0.0):
    return VolField.uniform("T", mesh, initial, dimTemperature, boundary={
        "left": {"type": "fixedValue", "value": 0.0},
        "right": {"type": "fixedValue", "value": 100.0},
    })


def test_incompatible_dimensions(line_mesh, make_ctx, diffusivity):
    ctx = make_ctx(line_mesh)
    T = conduction_field(line_mesh)
    fvm.ddt(ctx, T) - fvm.laplacian(ctx, diffusivity, T)
    with pytest.raises(ConfigurationError, match="Incompatible dimensions"):
        fvm.ddt(ctx, T) - fvm.laplacian(ctx, 1.0, T)


def test_incompatible_fields(line_mesh, make_ctx, diffusivity):
    ctx = make_ctx(line_mesh)
    T = conduction_field(line_mesh)
    S = VolField.uniform("S", line_mesh, 0.0, dimTemperature, boundary={
        "left": "zeroGradient", "right": "zeroGradient",
    })
    with pytest.raises(ConfigurationError, match="Incompatible fields"):
        fvm.laplacian(ctx, diffusivity, T) + fvm.laplacian(ctx, diffusivity, S)


def test_add_explicit_field(line_mesh):
    T = conduction_field(line_mesh)
    eqn = fvm.Sp(rate, T)
    su = VolField.calculated(
        "q", line_mesh, np.arange(5.0), dimTemperature / dimTime
    )
    eqn += su
    assert np.allclose(eqn.source, -line_mesh.cell_volumes * np.arange(5.0))
    eqn -= su
    assert np.allclose(eqn.source, 0.0)

    wrong = VolField.calculated("q", line_mesh, np.ones(5), dimTemperature)
    with pytest.raises(ConfigurationError, match="explicit terms need"):
        eqn += wrong


def test_explicit_field_shape_checked(line_mesh):
    T = conduction_field(line_mesh)
    eqn = fvm.Sp(rate, T)
    vector = VolField.calculated("q", line_mesh, np.ones((5, 2)), dimTemperature / dimTime)
    with pytest.raises(TopologyMismatch, match="value shape"):
        eqn += vector


def test_linear_sources(line_mesh):
    T = VolField("T", line_mesh, [1.0, 2.0, 3.0, 4.0, 5.0], dimTemperature, boundary={
        "left": "zeroGradient", "right": "zeroGradient",
    })
    V = line_mesh.cell_volumes

    sp = fvm.Sp(rate, T)
    assert np.allclose(sp.diag, 2.0 * V)
    assert sp.dimensions == dimTemperature * dimVolume / dimTime

    su = fvm.Su(DimensionedScalar("q", dimTemperature / dimTime, 3.0), T)
    assert np.allclose(su.source, -3.0 * V)
    assert np.allclose(su.diag, 0.0)

    coeff = np.array([1.0, -1.0, 2.0, -2.0, 0.0])
    susp = fvm.SuSp(coeff, T)
    assert np.allclose(susp.diag, [1.0, 0.0, 2.0, 0.0, 0.0])
    assert np.allclose(susp.source, [0.0, 2.0, 0.0, 8.0, 0.0])
    # both parts together apply coeff * T
    assert np.allclose(-susp.residual(), coeff * T.values)

    with pytest.raises(TopologyMismatch, match="entries"):
        fvm.Sp(np.ones(3), T)


def test_negation_and_scaling(line_mesh, make_ctx, diffusivity):
    ctx = make_ctx(line_mesh)
    T = conduction_field(line_mesh)
    eqn = fvm.laplacian(ctx, diffusivity, T)
    neg = -eqn
    assert np.array_equal(neg.diag, -eqn.diag)
    assert np.array_equal(neg.boundary_coeffs["right"], -eqn.boundary_coeffs["right"])
    doubled = 2.0 * eqn
    assert np.allclose(doubled.upper, 2.0 * eqn.upper)
    assert doubled.dimensions == eqn.dimensions
    scaled = eqn * DimensionedScalar("c", dimless / dimTime, 1.0)
    assert scaled.dimensions == eqn.dimensions / dimTime


def test_relax_one_leaves_matrix_untouched(line_mesh, make_ctx, diffusivity):
    ctx = make_ctx(line_mesh)
    T = conduction_field(line_mesh)
    eqn = -fvm.laplacian(ctx, diffusivity, T)
    reference = eqn.copy()
    assert eqn.relax(1.0) is eqn
    eqn.relax(None)
    assert np.array_equal(eqn.diag, reference.diag)
    assert np.array_equal(eqn.upper, reference.upper)
    assert np.array_equal(eqn.source, reference.source)


def test_relax_zero_keeps_previous_iteration(line_mesh, make_ctx, diffusivity):
    ctx = make_ctx(line_mesh)
    T = conduction_field(line_mesh)
    T.assign([5.0, 4.0, 3.0, 2.0, 1.0])
    T.store_prev_iter()
    T.assign(np.zeros(5))
    eqn = -fvm.laplacian(ctx, diffusivity, T)
    eqn.relax(0.0)
    eqn.solve(DIRECT)
    assert np.array_equal(T.values, [5.0, 4.0, 3.0, 2.0, 1.0])


def test_relax_preserves_converged_solution(mesh_instance, mesh_label, make_ctx, diffusivity):
    m = mesh_instance
    ctx = make_ctx(m, schemes={"laplacianSchemes": {"default": "Gauss linear uncorrected"}})
    T = VolField.uniform("T", m, 0.0, dimTemperature, boundary={
        "left": {"type": "fixedValue", "value": 0.0},
        "right": {"type": "fixedValue", "value": 100.0},
        "bottom": "zeroGradient",
        "top": {"type": "mixed", "refValue": 20.0, "refGradient": 0.0, "valueFraction": 0.5},
    })
    eqn = -fvm.laplacian(ctx, diffusivity, T) + fvm.Sp(rate, T)
    eqn.solve(DIRECT)
    converged = T.values.copy()

    T.store_prev_iter()
    relaxed = -fvm.laplacian(ctx, diffusivity, T) + fvm.Sp(rate, T)
    unrelaxed_diag = relaxed.diag.copy()
    relaxed.relax(0.5)
    assert np.all(relaxed.diag >= unrelaxed_diag)
    assert np.allclose(relaxed.residual(), 0.0, atol=1e-8)
    relaxed.solve(DIRECT)
    assert np.allclose(T.values, converged, atol=1e-10)


def test_relax_factor_range(line_mesh, make_ctx, diffusivity):
    ctx = make_ctx(line_mesh)
    eqn = fvm.laplacian(ctx, diffusivity, conduction_field(line_mesh))
    with pytest.raises(ConfigurationError, match="must lie in"):
        eqn.relax(1.5)


def test_set_values(line_mesh, make_ctx, diffusivity):
    ctx = make_ctx(line_mesh)
    T = conduction_field(line_mesh)
    eqn = -fvm.laplacian(ctx, diffusivity, T)
    eqn.set_values([2], 60.0)
    assert eqn.upper[1] == 0.0 and eqn.lower[2] == 0.0
    eqn.solve(DIRECT)
    assert np.allclose(T.values, [12.0, 36.0, 60.0, 76.0, 92.0])


def test_set_reference_fixes_level(line_mesh, make_ctx, diffusivity):
    ctx = make_ctx(line_mesh)
    T = VolField.uniform("T", line_mesh, 1.0, dimTemperature, boundary={
        "left": "zeroGradient", "right": "zeroGradient",
    })
    eqn = -fvm.laplacian(ctx, diffusivity, T)
    assert eqn.need_reference()
    eqn.set_reference(0, 5.0)
    eqn.solve(DIRECT)
    assert np.allclose(T.values, 5.0)

    fixed = -fvm.laplacian(ctx, diffusivity, conduction_field(line_mesh))
    assert not fixed.need_reference()
    diag = fixed.diag.copy()
    fixed.set_reference(0, 5.0)
    assert np.array_equal(fixed.diag, diag)


def test_h_over_a_recovers_solution(line_mesh, make_ctx, diffusivity):
    ctx = make_ctx(line_mesh)
    T = conduction_field(line_mesh)
    eqn = -fvm.laplacian(ctx, diffusivity, T) + fvm.Sp(rate, T)
    eqn.solve(DIRECT)
    eqn = -fvm.laplacian(ctx, diffusivity, T) + fvm.Sp(rate, T)
    assert np.allclose(eqn.H().values / eqn.A().values, T.values)
    assert eqn.A().dimensions == dimless / dimTime


def test_vector_h_over_a(line_mesh, make_ctx, diffusivity):
    ctx = make_ctx(line_mesh)
    U = VolField.uniform("U", line_mesh, [0.0, 0.0], boundary={
        "left": {"type": "fixedValue", "value": [1.0, -1.0]},
        "right": {"type": "fixedGradient", "gradient": [0.0, 2.0]},
    })
    eqn = -fvm.laplacian(ctx, diffusivity, U) + fvm.Sp(rate, U)
    eqn.solve(DIRECT)
    eqn = -fvm.laplacian(ctx, diffusivity, U) + fvm.Sp(rate, U)
    HbyA = eqn.H().values / eqn.A().values[:, None]
    assert np.allclose(HbyA, U.values)
