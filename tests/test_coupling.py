import numpy as np
import pytest

from fvengine.assembly.coupling import CouplingTerm
from fvengine.assembly.fv_matrix import EquationMatrix
from fvengine.core.dimensions import DimensionedScalar, dimless, dimTemperature, dimTime, dimVolume
from fvengine.core.fields import VolField
from fvengine.errors import ConfigurationError, TopologyMismatch
from fvengine.mesh import generate_line

Kh = DimensionedScalar("Kh", dimless / dimTime, 0.7)
EQN_DIMS = dimless / dimTime * dimTemperature * dimVolume


def phase_fields(mesh, seed=3):
    rng = np.random.default_rng(seed)
    fields = []
    for name in ("T1", "T2"):
        fields.append(VolField(name, mesh, rng.uniform(250.0, 400.0, mesh.n_cells), dimTemperature))
    return fields


def test_explicit_exchange_sums_to_zero(mesh_instance, mesh_label):
    T1, T2 = phase_fields(mesh_instance)
    eqn1, eqn2 = EquationMatrix(T1, EQN_DIMS), EquationMatrix(T2, EQN_DIMS)
    term = CouplingTerm(Kh, T1, T2, implicit=False)
    exchanged = term.apply(eqn1, eqn2)
    assert np.all(eqn1.source + eqn2.source == 0.0)
    assert np.sum(eqn1.source) + np.sum(eqn2.source) == 0.0
    assert np.allclose(exchanged, 0.7 * mesh_instance.cell_volumes * (T2.values - T1.values))
    assert np.array_equal(eqn1.diag, np.zeros(mesh_instance.n_cells))


def test_implicit_exchange_sums_to_zero(mesh_instance, mesh_label):
    T1, T2 = phase_fields(mesh_instance)
    eqn1, eqn2 = EquationMatrix(T1, EQN_DIMS), EquationMatrix(T2, EQN_DIMS)
    CouplingTerm(Kh, T1, T2).apply(eqn1, eqn2)
    kv = 0.7 * mesh_instance.cell_volumes
    assert np.allclose(eqn1.diag, kv)
    assert np.allclose(eqn2.diag, kv)
    # kv T1 - kv T2 in one equation, kv T2 - kv T1 in the other
    assert np.all(eqn1.residual() + eqn2.residual() == 0.0)


def test_per_cell_coefficient(line_mesh):
    T1, T2 = phase_fields(line_mesh)
    K = VolField("Kh", line_mesh, np.arange(5.0), dimless / dimTime)
    eqn1, eqn2 = EquationMatrix(T1, EQN_DIMS), EquationMatrix(T2, EQN_DIMS)
    exchanged = CouplingTerm(K, T1, T2, implicit=False).apply(eqn1, eqn2)
    assert exchanged[0] == 0.0
    assert np.allclose(exchanged, np.arange(5.0) * (T2.values - T1.values))


def test_coupling_validation(line_mesh):
    T1, T2 = phase_fields(line_mesh)
    other_mesh = generate_line(n_cells=5, length=5.0)
    with pytest.raises(TopologyMismatch, match="different meshes"):
        CouplingTerm(Kh, T1, VolField("T3", other_mesh, np.ones(5), dimTemperature))
    with pytest.raises(TopologyMismatch, match="differ in shape"):
        CouplingTerm(Kh, T1, VolField("U", line_mesh, np.ones((5, 2)), dimTemperature))
    with pytest.raises(ConfigurationError, match="differ in dimensions"):
        CouplingTerm(Kh, T1, VolField("p", line_mesh, np.ones(5)))

    term = CouplingTerm(Kh, T1, T2)
    with pytest.raises(ConfigurationError, match="applied to"):
        term.apply(EquationMatrix(T2, EQN_DIMS), EquationMatrix(T1, EQN_DIMS))


def test_exchange_dimensions_checked(line_mesh):
    T1, T2 = phase_fields(line_mesh)
    wrong = EquationMatrix(T1, dimTemperature * dimVolume)
    with pytest.raises(ConfigurationError, match="Incompatible dimensions"):
        CouplingTerm(Kh, T1, T2).apply(wrong, EquationMatrix(T2, EQN_DIMS))
