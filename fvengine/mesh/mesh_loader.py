import numpy as np
import meshio
import yaml

from fvengine.errors import ConfigurationError
from fvengine.mesh.mesh_builder import build_polygon_mesh


def _physical_names(mesh):
    """Map gmsh physical tag -> name for 1D (boundary) groups."""
    names = {}
    for name, data in mesh.field_data.items():
        tag, dim = int(data[0]), int(data[1])
        if dim == 1:
            names[tag] = name
    return names


def load_mesh(filename, patch_config_file=None):
    """
    Load a 2D mesh (triangles or quads) from a Gmsh .msh file.

    Boundary line elements tagged with a physical group become patches named
    after the group. An optional YAML file with a ``patches`` mapping
    (name -> {type: wall|patch|empty}) sets the patch types.
    """
    patch_types = {}
    if patch_config_file is not None:
        with open(patch_config_file, "r") as f:
            config = yaml.safe_load(f) or {}
        patch_types = {
            name: entry.get("type", "patch")
            for name, entry in (config.get("patches") or {}).items()
        }

    mesh = meshio.read(filename)
    points = mesh.points[:, :2]

    if "quad" in mesh.cells_dict:
        cells = mesh.cells_dict["quad"]
    elif "triangle" in mesh.cells_dict:
        cells = mesh.cells_dict["triangle"]
    else:
        raise ConfigurationError("Unsupported mesh type: must contain triangle or quad cells")

    cells = _counter_clockwise(points, np.asarray(cells, dtype=np.int64))

    boundary_edges = {}
    names = _physical_names(mesh)
    physical = mesh.cell_data_dict.get("gmsh:physical", {})
    if "line" in mesh.cells_dict and "line" in physical:
        lines = mesh.cells_dict["line"]
        tags = physical["line"]
        for (v0, v1), tag in zip(lines, tags):
            name = names.get(int(tag), f"patch{int(tag)}")
            boundary_edges.setdefault(name, []).append((int(v0), int(v1)))

    return build_polygon_mesh(points, cells, boundary_edges, patch_types)


def _counter_clockwise(points, cells):
    x = points[cells, 0]
    y = points[cells, 1]
    signed = (x * np.roll(y, -1, axis=1) - np.roll(x, -1, axis=1) * y).sum(axis=1)
    cells = cells.copy()
    cells[signed < 0] = cells[signed < 0, ::-1]
    return cells
