"""Structured quadrilateral meshes built directly in numpy.

Generates an nx x ny mesh on [0, Lx] x [0, Ly] with patches
'left', 'right', 'bottom' and 'top'. A non-zero ``skew`` shears the mesh
(x += skew * y) so the faces are no longer orthogonal to the
cell-centre lines.
"""

import numpy as np

from fvengine.mesh.mesh_builder import build_polygon_mesh
from fvengine.mesh.mesh_data import EMPTY, PATCH


def generate_structured(nx=10, ny=10, Lx=1.0, Ly=1.0, skew=0.0, patch_types=None):
    xs = np.linspace(0.0, Lx, nx + 1)
    ys = np.linspace(0.0, Ly, ny + 1)
    X, Y = np.meshgrid(xs, ys, indexing="xy")
    X = X + skew * Y
    points = np.column_stack([X.ravel(), Y.ravel()])

    def vid(i, j):
        return j * (nx + 1) + i

    cells = np.array(
        [
            [vid(i, j), vid(i + 1, j), vid(i + 1, j + 1), vid(i, j + 1)]
            for j in range(ny)
            for i in range(nx)
        ],
        dtype=np.int64,
    )

    boundary_edges = {
        "left": [(vid(0, j), vid(0, j + 1)) for j in range(ny)],
        "right": [(vid(nx, j), vid(nx, j + 1)) for j in range(ny)],
        "bottom": [(vid(i, 0), vid(i + 1, 0)) for i in range(nx)],
        "top": [(vid(i, ny), vid(i + 1, ny)) for i in range(nx)],
    }
    types = {name: PATCH for name in boundary_edges}
    types.update(patch_types or {})
    return build_polygon_mesh(points, cells, boundary_edges, types)


def generate_line(n_cells=10, length=1.0):
    """One-dimensional mesh: a single row of cells with empty top/bottom patches."""
    return generate_structured(
        nx=n_cells, ny=1, Lx=length, Ly=length / n_cells,
        patch_types={"bottom": EMPTY, "top": EMPTY},
    )
