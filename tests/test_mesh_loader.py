import meshio
import numpy as np
import pytest
import yaml

from fvengine.errors import ConfigurationError
from fvengine.mesh import load_mesh

POINTS = np.array([
    [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0],
    [0.0, 1.0, 0.0], [1.0, 1.0, 0.0], [2.0, 1.0, 0.0],
])
# the second quad is ordered clockwise on purpose
QUADS = np.array([[0, 1, 4, 3], [4, 5, 2, 1]])
LINES = np.array([[3, 0], [2, 5], [0, 1], [1, 2], [4, 3], [5, 4]])
LINE_TAGS = np.array([1, 2, 3, 3, 4, 4])


def write_msh(path, cells, cell_data):
    mesh = meshio.Mesh(
        POINTS, cells, cell_data=cell_data,
        field_data={
            "inlet": np.array([1, 1]),
            "outlet": np.array([2, 1]),
            "walls": np.array([3, 1]),
            "fluid": np.array([10, 2]),
        },
    )
    meshio.write(str(path), mesh, file_format="gmsh22", binary=False)
    return path


def two_quads(tmp_path):
    return write_msh(
        tmp_path / "channel.msh",
        [("line", LINES), ("quad", QUADS)],
        {
            "gmsh:physical": [LINE_TAGS, np.array([10, 10])],
            "gmsh:geometrical": [LINE_TAGS, np.array([1, 1])],
        },
    )


def test_load_gmsh_quads(tmp_path):
    mesh = load_mesh(two_quads(tmp_path))
    assert mesh.n_cells == 2
    assert mesh.n_internal == 1
    assert set(mesh.patch_names()) == {"inlet", "outlet", "walls", "patch4"}
    assert len(mesh.patch_faces("walls")) == 2
    assert np.allclose(mesh.cell_volumes, 1.0)
    assert np.allclose(np.sort(mesh.cell_centers[:, 0]), [0.5, 1.5])
    # the internal face points from owner to neighbour
    owner, neighbour = mesh.owner_cells[0], mesh.neighbor_cells[0]
    d = mesh.cell_centers[neighbour] - mesh.cell_centers[owner]
    assert d @ mesh.vector_S_f[0] > 0.0


def test_patch_types_from_config(tmp_path):
    config = tmp_path / "patches.yaml"
    with open(config, "w") as f:
        yaml.safe_dump({"patches": {"walls": {"type": "wall"}, "patch4": {"type": "empty"}}}, f)
    mesh = load_mesh(two_quads(tmp_path), config)
    assert mesh.patch_types["walls"] == "wall"
    assert mesh.patch_types["patch4"] == "empty"


def test_mesh_without_cells(tmp_path):
    path = write_msh(
        tmp_path / "lines.msh",
        [("line", LINES)],
        {"gmsh:physical": [LINE_TAGS], "gmsh:geometrical": [LINE_TAGS]},
    )
    with pytest.raises(ConfigurationError, match="must contain triangle or quad cells"):
        load_mesh(path)
