import numpy as np
import pytest

from fvengine.assembly import fvc, fvm
from fvengine.config import SolverControls
from fvengine.core.dimensions import dimTemperature, dimVolumetricFlux
from fvengine.core.fields import SurfaceField, VolField
from fvengine.core.time import TimeState
from fvengine.errors import ConfigurationError, TopologyMismatch
from fvengine.parallel import decompose, exchange_gradient_halos, local_contexts, solve_decomposed

DIRECT = SolverControls(solver="direct", tolerance=1e-14)


def transport_field(mesh):
    x, y = mesh.cell_centers[:, 0], mesh.cell_centers[:, 1]
    return VolField("T", mesh, np.sin(3.0 * x) + x * y, dimTemperature, boundary={
        "left": {"type": "fixedValue", "value": 1.0},
        "right": "zeroGradient",
        "bottom": {"type": "fixedGradient", "gradient": 0.5},
        "top": {"type": "fixedValue", "value": 0.0},
    })


def uniform_flux(mesh, velocity=(1.0, 0.3)):
    return SurfaceField("phi", mesh, mesh.vector_S_f @ np.asarray(velocity), dimVolumetricFlux)


def test_partition_structure(skewed_mesh):
    dec = decompose(skewed_mesh, 3)
    assert len(dec) == 3
    assert sum(p.mesh.n_cells for p in dec) == skewed_mesh.n_cells
    assert np.array_equal(np.sort(np.concatenate([p.cell_map for p in dec])),
                          np.arange(skewed_mesh.n_cells))

    first, middle, last = (p.mesh for p in dec)
    assert "procBoundary0to1" in first.patch_names()
    assert {"procBoundary1to0", "procBoundary1to2"} <= set(middle.patch_names())
    assert "procBoundary0to2" not in first.patch_names()
    assert len(first.patch_faces("procBoundary0to1")) == len(middle.patch_faces("procBoundary1to0"))
    for partition in dec:
        assert {"left", "right", "bottom", "top"} <= set(partition.mesh.patch_names())


@pytest.mark.parametrize("n_parts", [2, 3, 4])
def test_local_cells_are_closed(skewed_mesh, n_parts):
    """Area vectors of every local cell still sum to zero after flipping cut faces."""
    for partition in decompose(skewed_mesh, n_parts):
        m = partition.mesh
        closure = np.zeros((m.n_cells, 2))
        np.add.at(closure, m.owner_cells, m.vector_S_f)
        internal = slice(0, m.n_internal)
        np.subtract.at(closure, m.neighbor_cells[internal], m.vector_S_f[internal])
        assert np.allclose(closure, 0.0, atol=1e-12)
        # owner-outward orientation on every face
        outward = np.einsum("ij,ij->i", m.face_centers - m.cell_centers[m.owner_cells], m.vector_S_f)
        assert np.all(outward > 0.0)


def test_flux_distribution_keeps_cell_balances(skewed_mesh):
    phi = SurfaceField("phi", skewed_mesh, np.random.default_rng(4).uniform(-1.0, 1.0, skewed_mesh.n_faces))
    dec = decompose(skewed_mesh, 3)
    global_sum = fvc.surface_sum(phi).values
    for partition, local in zip(dec, dec.distribute_flux(phi)):
        assert np.allclose(fvc.surface_sum(local).values, global_sum[partition.cell_map])


def test_distribute_and_reconstruct(skewed_mesh, make_ctx):
    ctx = make_ctx(skewed_mesh, time=TimeState(delta_t=0.1))
    T = ctx.register(transport_field(skewed_mesh))
    ctx.advance_time()
    T.assign(T.values + 1.0)

    dec = decompose(skewed_mesh, 3)
    local_T = dec.distribute(T)
    assert np.array_equal(dec.reconstruct(local_T), T.values)
    for partition, local in zip(dec, local_T):
        assert local.n_old_times() == 1
        assert np.array_equal(local.old_time().values, T.old_time().values[partition.cell_map])
        for name, info in partition.mesh.coupled_patches.items():
            remote = dec.partitions[info.neighbour_partition]
            assert np.array_equal(local.boundary[name].neighbour_values,
                                  T.values[remote.cell_map[info.neighbour_cells]])

    target = VolField.uniform("T", skewed_mesh, 0.0, dimTemperature)
    dec.reconstruct(local_T, target)
    assert np.array_equal(target.values, T.values)


@pytest.mark.parametrize("convection", [
    "Gauss linear",
    "Gauss upwind",
    "Gauss limitedLinear 1",
    "Gauss linearUpwind grad(T)",
])
def test_decomposed_solution_matches_serial(skewed_mesh, make_ctx, diffusivity, convection):
    ctx = make_ctx(skewed_mesh, schemes={"divSchemes": {"div(phi,T)": convection}},
                   time=TimeState(delta_t=0.1))
    T = ctx.register(transport_field(skewed_mesh))
    phi = uniform_flux(skewed_mesh)
    ctx.advance_time()

    def assemble(c, t, f):
        return fvm.ddt(c, t) + fvm.div(c, f, t) - fvm.laplacian(c, diffusivity, t)

    dec = decompose(skewed_mesh, 3)
    contexts = local_contexts(dec, ctx)
    local_T = dec.distribute(T)
    local_phi = dec.distribute_flux(phi)
    exchange_gradient_halos(dec, contexts, local_T)
    performance = solve_decomposed(
        dec, [assemble(c, t, f) for c, t, f in zip(contexts, local_T, local_phi)], DIRECT,
    )
    assert performance.field_name == "T"

    assemble(ctx, T, phi).solve(DIRECT)
    assert np.allclose(dec.reconstruct(local_T), T.values, rtol=1e-10, atol=1e-10)


def test_missing_gradient_halo(skewed_mesh, make_ctx, diffusivity):
    ctx = make_ctx(skewed_mesh)
    dec = decompose(skewed_mesh, 2)
    contexts = local_contexts(dec, ctx)
    local_T = dec.distribute(transport_field(skewed_mesh))
    with pytest.raises(TopologyMismatch, match="was not exchanged"):
        fvm.laplacian(contexts[0], diffusivity, local_T[0])


def test_manual_decomposition(structured_mesh):
    cell_partition = (structured_mesh.cell_centers[:, 1] > 0.5).astype(int)
    dec = decompose(structured_mesh, 2, method="manual", cell_partition=cell_partition)
    bottom, top = dec.partitions
    assert np.all(structured_mesh.cell_centers[bottom.cell_map, 1] < 0.5)
    assert len(bottom.mesh.patch_faces("procBoundary0to1")) == 6
    assert len(bottom.mesh.patch_faces("top")) == 0


def test_decomposition_errors(structured_mesh):
    with pytest.raises(ConfigurationError, match="Cannot split"):
        decompose(structured_mesh, 0)
    with pytest.raises(ConfigurationError, match="Unknown decomposition method 'scotch'"):
        decompose(structured_mesh, 2, method="scotch")
    with pytest.raises(ConfigurationError, match="needs a cell_partition"):
        decompose(structured_mesh, 2, method="manual")
    with pytest.raises(ConfigurationError, match="must lie in"):
        decompose(structured_mesh, 2, method="manual", cell_partition=np.full(24, 2))
    empty_middle = np.where(np.arange(24) < 12, 0, 2)
    with pytest.raises(ConfigurationError, match="Partition 1 of 3 has no cells"):
        decompose(structured_mesh, 3, method="manual", cell_partition=empty_middle)

    dec = decompose(structured_mesh, 2)
    with pytest.raises(TopologyMismatch, match="already has processor patches"):
        decompose(dec.partitions[0].mesh, 2)
    with pytest.raises(TopologyMismatch, match="not defined on the decomposed mesh"):
        dec.distribute(VolField.uniform("T", dec.partitions[0].mesh, 0.0))
