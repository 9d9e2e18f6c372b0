import numpy as np
import pytest

from fvengine.core.helpers import surface_sum
from fvengine.errors import TopologyMismatch
from fvengine.mesh import build_polygon_mesh, generate_line, generate_structured
from fvengine.mesh.mesh_data import EMPTY


def test_mesh_closed_cells(mesh_instance, mesh_label):
    """Sum of outward face area vectors of every cell vanishes."""
    closure = surface_sum(mesh_instance, mesh_instance.vector_S_f)
    assert np.allclose(closure, 0.0, atol=1e-12), f"Open cells on {mesh_label}"


def test_mesh_owner_normals_point_out(mesh_instance, mesh_label):
    m = mesh_instance
    out = np.einsum("ij,ij->i", m.vector_S_f, m.face_centers - m.cell_centers[m.owner_cells])
    assert np.all(out > 0.0)


def test_mesh_internal_faces_first(mesh_instance, mesh_label):
    m = mesh_instance
    assert np.all(m.neighbor_cells[: m.n_internal] >= 0)
    assert np.all(m.neighbor_cells[m.n_internal:] == -1)
    assert np.all(m.owner_cells[: m.n_internal] < m.neighbor_cells[: m.n_internal])
    covered = np.sort(np.concatenate([m.patch_faces(p) for p in m.patch_names()]))
    assert np.array_equal(covered, m.boundary_faces)


def test_mesh_volumes_and_interp_factors(mesh_instance, mesh_label):
    m = mesh_instance
    assert np.isclose(m.cell_volumes.sum(), 1.0)
    g = m.face_interp_factors
    assert np.all((g[: m.n_internal] > 0.0) & (g[: m.n_internal] < 1.0))
    assert np.all(g[m.n_internal:] == 0.0)
    assert np.all(m.delta_coeffs > 0.0)


def test_structured_mesh_metrics():
    m = generate_structured(nx=4, ny=2, Lx=2.0, Ly=1.0)
    assert m.n_cells == 8
    assert m.n_internal == 3 * 2 + 4 * 1
    assert m.orthogonal
    assert np.allclose(m.face_interp_factors[: m.n_internal], 0.5)
    # every internal face is 0.5 away from both cell centres
    assert np.allclose(m.delta_coeffs[: m.n_internal], 2.0)
    assert np.allclose(m.vector_T_f, 0.0)


def test_skewed_mesh_is_non_orthogonal():
    m = generate_structured(nx=4, ny=4, skew=0.3)
    assert not m.orthogonal
    assert np.allclose(m.vector_E_f + m.vector_T_f, m.vector_S_f)
    # E_f is parallel to d_CE
    cross = m.vector_E_f[:, 0] * m.vector_d_CE[:, 1] - m.vector_E_f[:, 1] * m.vector_d_CE[:, 0]
    assert np.allclose(cross, 0.0, atol=1e-12)


def test_line_mesh_patches():
    m = generate_line(n_cells=5, length=5.0)
    assert m.n_cells == 5
    assert m.patch_types["top"] == EMPTY
    assert m.patch_types["bottom"] == EMPTY
    assert np.allclose(m.cell_centers[:, 0], [0.5, 1.5, 2.5, 3.5, 4.5])
    assert np.allclose(m.cell_volumes, 1.0)


def test_clockwise_cells_rejected():
    points = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
    with pytest.raises(TopologyMismatch):
        build_polygon_mesh(points, np.array([[0, 3, 2, 1]]), {})


def test_unlisted_boundary_edges_go_to_default_patch():
    points = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
    m = build_polygon_mesh(points, np.array([[0, 1, 2, 3]]), {"left": [(3, 0)]})
    assert m.patch_names() == ["left", "defaultFaces"]
    assert len(m.patch_faces("defaultFaces")) == 3


def test_cell_array_size_checked(structured_mesh):
    with pytest.raises(TopologyMismatch):
        structured_mesh.check_cell_array(np.zeros(3), "Field 'T'")
