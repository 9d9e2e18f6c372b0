# conftest.py

import numpy as np
import pytest

from fvengine.core.context import SimulationContext
from fvengine.core.dimensions import DimensionedScalar, dimKinematicViscosity
from fvengine.core.fields import VolField
from fvengine.mesh import build_polygon_mesh, generate_line, generate_structured

DEFAULT_SCHEMES = {
    "ddtSchemes": {"default": "Euler"},
    "gradSchemes": {"default": "Gauss linear"},
    "divSchemes": {"default": "Gauss linear"},
    "laplacianSchemes": {"default": "Gauss linear corrected"},
    "interpolationSchemes": {"default": "linear"},
    "snGradSchemes": {"default": "corrected"},
}


def generate_triangles(nx=6, ny=4, Lx=1.0, Ly=1.0):
    """Structured quads split along one diagonal, same patches as generate_structured."""
    xs = np.linspace(0.0, Lx, nx + 1)
    ys = np.linspace(0.0, Ly, ny + 1)
    X, Y = np.meshgrid(xs, ys, indexing="xy")
    points = np.column_stack([X.ravel(), Y.ravel()])

    def vid(i, j):
        return j * (nx + 1) + i

    cells = []
    for j in range(ny):
        for i in range(nx):
            a, b, c, d = vid(i, j), vid(i + 1, j), vid(i + 1, j + 1), vid(i, j + 1)
            cells.append([a, b, c])
            cells.append([a, c, d])

    boundary_edges = {
        "left": [(vid(0, j), vid(0, j + 1)) for j in range(ny)],
        "right": [(vid(nx, j), vid(nx, j + 1)) for j in range(ny)],
        "bottom": [(vid(i, 0), vid(i + 1, 0)) for i in range(nx)],
        "top": [(vid(i, ny), vid(i + 1, ny)) for i in range(nx)],
    }
    return build_polygon_mesh(points, np.array(cells), boundary_edges)


MESHES = {
    "structured_uniform": lambda: generate_structured(nx=6, ny=4),
    "structured_skewed": lambda: generate_structured(nx=6, ny=4, skew=0.3),
    "triangles": lambda: generate_triangles(nx=5, ny=4),
}


@pytest.fixture
def mesh_instance(mesh_label):
    return MESHES[mesh_label]()


def pytest_generate_tests(metafunc):
    if "mesh_label" in metafunc.fixturenames:
        metafunc.parametrize("mesh_label", sorted(MESHES))


@pytest.fixture
def line_mesh():
    """Five cells of unit length on [0, 5]."""
    return generate_line(n_cells=5, length=5.0)


@pytest.fixture
def structured_mesh():
    return generate_structured(nx=6, ny=4)


@pytest.fixture
def skewed_mesh():
    return generate_structured(nx=6, ny=4, skew=0.3)


@pytest.fixture
def make_ctx():
    """Factory: context on a mesh, default schemes overridden section by section."""

    def factory(mesh, schemes=None, solution=None, time=None):
        config = {section: dict(entries) for section, entries in DEFAULT_SCHEMES.items()}
        for section, entries in (schemes or {}).items():
            config.setdefault(section, {}).update(entries)
        return SimulationContext(mesh, config, solution, time)

    return factory


@pytest.fixture
def diffusivity():
    return DimensionedScalar("DT", dimKinematicViscosity, 1.0)


@pytest.fixture
def linear_field():
    """Factory: calculated field a . x + b with exact values on the boundary faces."""

    def factory(mesh, a, b=0.0, name="T"):
        a = np.asarray(a, dtype=np.float64)
        values = mesh.cell_centers @ a + b
        boundary = {
            patch: mesh.face_centers[mesh.patch_faces(patch)] @ a + b
            for patch in mesh.patch_names()
        }
        return VolField.calculated(name, mesh, values, boundary_values=boundary)

    return factory
