"""
MeshData: Core data layout for the finite volume assembly engine (2D, collocated).

This class holds static geometry, connectivity, patch grouping and the
precomputed metrics used by the discretisation schemes, following
Moukalled's finite volume formulation (over-relaxed non-orthogonal split).

Indexing Conventions:
- Internal faces are numbered first (0 .. n_internal-1), boundary faces follow,
  grouped by patch in patch order.
- All face-based arrays (e.g., vector_S_f, owner_cells) use face indexing (0 to n_faces-1).
- All cell-based arrays (e.g., cell_volumes, cell_centers) use cell indexing (0 to n_cells-1).
- neighbor_cells[f] = -1 for boundary faces.
- vector_S_f points out of the owner cell.

Interpolation:
- face_interp_factors[f] = g_f = neighbour weight of linear interpolation,
  phi_f = (1 - g_f) * phi_P + g_f * phi_N. Zero on non-coupled boundary faces.

Non-orthogonal split (Moukalled 8.6.4, over-relaxed):
- vector_E_f = (|S_f|^2 / (S_f . d_CE)) d_CE, vector_T_f = S_f - vector_E_f
- delta_coeffs[f] = |E_f| / (|S_f| |d_CE|) = 1 / (n_f . d_CE)
- d_CE is the owner->neighbour centroid vector on internal faces and the
  owner->face-centre vector on boundary faces.
"""

from dataclasses import dataclass, field

import numpy as np

from fvengine.errors import TopologyMismatch

EPS = 1.0e-14

PATCH = "patch"
EMPTY = "empty"
PROCESSOR = "processor"


@dataclass
class ProcessorPatch:
    """Coupling information of a processor (inter-partition) patch."""

    my_partition: int
    neighbour_partition: int
    global_faces: np.ndarray
    flipped: np.ndarray
    neighbour_cells: np.ndarray


@dataclass(eq=False)
class MeshData:
    # --- Cell Geometry ---
    cell_volumes: np.ndarray
    cell_centers: np.ndarray

    # --- Face Geometry ---
    face_areas: np.ndarray
    face_centers: np.ndarray
    vector_S_f: np.ndarray

    # --- Connectivity ---
    owner_cells: np.ndarray
    neighbor_cells: np.ndarray
    cell_faces: np.ndarray

    # --- Vector Geometry ---
    vector_d_CE: np.ndarray
    vector_E_f: np.ndarray
    vector_T_f: np.ndarray

    # --- Interpolation / gradient metrics ---
    face_interp_factors: np.ndarray
    delta_coeffs: np.ndarray

    # --- Patches ---
    patches: dict
    patch_types: dict = field(default_factory=dict)
    coupled_patches: dict = field(default_factory=dict)

    def __post_init__(self):
        self.n_cells = self.cell_volumes.shape[0]
        self.n_faces = self.face_areas.shape[0]
        self.n_internal = int(np.count_nonzero(self.neighbor_cells >= 0))

        if np.any(self.neighbor_cells[: self.n_internal] < 0) or np.any(
            self.neighbor_cells[self.n_internal:] >= 0
        ):
            raise TopologyMismatch("Internal faces must be numbered before boundary faces")

        self.internal_faces = np.arange(self.n_internal, dtype=np.int64)
        self.boundary_faces = np.arange(self.n_internal, self.n_faces, dtype=np.int64)

        self.face_patch = np.full(self.n_faces, -1, dtype=np.int64)
        covered = 0
        for patch_id, (name, faces) in enumerate(self.patches.items()):
            self.patches[name] = np.asarray(faces, dtype=np.int64)
            self.face_patch[self.patches[name]] = patch_id
            self.patch_types.setdefault(name, PATCH)
            covered += len(faces)
        if covered != self.n_faces - self.n_internal or np.any(
            self.face_patch[self.n_internal:] < 0
        ):
            raise TopologyMismatch("Every boundary face must belong to exactly one patch")

        self.nonorth_correction_vectors = self.vector_T_f / (self.face_areas[:, None] + EPS)
        coupled = np.zeros(self.n_faces, dtype=bool)
        coupled[: self.n_internal] = True
        for name, faces in self.patches.items():
            if self.patch_types[name] == PROCESSOR:
                coupled[faces] = True
        self.orthogonal = bool(
            np.max(np.abs(self.nonorth_correction_vectors[coupled]), initial=0.0) < 1.0e-12
        )

    # ------------------------------------------------------------------
    def patch_names(self):
        return list(self.patches)

    def patch_faces(self, name):
        return self.patches[name]

    def patch_cells(self, name):
        return self.owner_cells[self.patches[name]]

    def is_coupled(self, name):
        return self.patch_types.get(name) == PROCESSOR

    def check_cell_array(self, values, what):
        if values.shape[0] != self.n_cells:
            raise TopologyMismatch(
                f"{what} has {values.shape[0]} entries but the mesh has {self.n_cells} cells"
            )

    def check_face_array(self, values, what):
        if values.shape[0] != self.n_faces:
            raise TopologyMismatch(
                f"{what} has {values.shape[0]} entries but the mesh has {self.n_faces} faces"
            )

    def __repr__(self):
        return (
            f"MeshData(n_cells={self.n_cells}, n_faces={self.n_faces}, "
            f"n_internal={self.n_internal}, patches={list(self.patches)})"
        )


def compute_face_metrics(cell_centers, face_centers, vector_S_f, owner_cells, neighbor_cells):
    """
    Derived face geometry: d_CE, E_f, T_f, interpolation factors and delta coefficients.
    """
    n_faces = vector_S_f.shape[0]
    internal = neighbor_cells >= 0
    P = owner_cells
    N = np.where(internal, neighbor_cells, owner_cells)

    d_CE = np.where(
        internal[:, None],
        cell_centers[N] - cell_centers[P],
        face_centers - cell_centers[P],
    )

    face_areas = np.linalg.norm(vector_S_f, axis=1)
    n_hat = vector_S_f / (face_areas[:, None] + EPS)
    d_mag = np.linalg.norm(d_CE, axis=1)

    # Clip the projection like the limited orthogonal distance in OpenFOAM
    n_dot_d = np.maximum(np.einsum("ij,ij->i", n_hat, d_CE), 0.05 * d_mag)
    delta_coeffs = 1.0 / (n_dot_d + EPS)

    S_dot_d = face_areas * n_dot_d
    vector_E_f = (face_areas ** 2 / (S_dot_d + EPS))[:, None] * d_CE
    vector_T_f = vector_S_f - vector_E_f

    # g_f = n.(x_f - x_P) / n.(x_N - x_P) on internal faces
    face_interp_factors = np.zeros(n_faces)
    d_Pf = np.einsum("ij,ij->i", n_hat, face_centers - cell_centers[P])
    face_interp_factors[internal] = d_Pf[internal] / (n_dot_d[internal] + EPS)

    return d_CE, vector_E_f, vector_T_f, face_interp_factors, delta_coeffs


def compute_cell_faces(n_cells, owner_cells, neighbor_cells):
    """Padded list of face indices per cell (-1 padding)."""
    counts = np.bincount(owner_cells, minlength=n_cells)
    internal = neighbor_cells >= 0
    counts += np.bincount(neighbor_cells[internal], minlength=n_cells)
    width = int(counts.max()) if n_cells else 0
    cell_faces = np.full((n_cells, max(width, 1)), -1, dtype=np.int64)
    fill = np.zeros(n_cells, dtype=np.int64)
    for f in range(owner_cells.shape[0]):
        for c in (owner_cells[f], neighbor_cells[f]):
            if c < 0:
                continue
            cell_faces[c, fill[c]] = f
            fill[c] += 1
    return cell_faces


def build_mesh_data(cell_volumes, cell_centers, face_centers, vector_S_f,
                    owner_cells, neighbor_cells, patches, patch_types=None):
    """Assemble a MeshData from primitive geometry, computing all derived metrics."""
    cell_volumes = np.ascontiguousarray(cell_volumes, dtype=np.float64)
    cell_centers = np.ascontiguousarray(cell_centers, dtype=np.float64)
    face_centers = np.ascontiguousarray(face_centers, dtype=np.float64)
    vector_S_f = np.ascontiguousarray(vector_S_f, dtype=np.float64)
    owner_cells = np.ascontiguousarray(owner_cells, dtype=np.int64)
    neighbor_cells = np.ascontiguousarray(neighbor_cells, dtype=np.int64)

    d_CE, E_f, T_f, g_f, delta = compute_face_metrics(
        cell_centers, face_centers, vector_S_f, owner_cells, neighbor_cells
    )
    return MeshData(
        cell_volumes=cell_volumes,
        cell_centers=cell_centers,
        face_areas=np.linalg.norm(vector_S_f, axis=1),
        face_centers=face_centers,
        vector_S_f=vector_S_f,
        owner_cells=owner_cells,
        neighbor_cells=neighbor_cells,
        cell_faces=compute_cell_faces(len(cell_volumes), owner_cells, neighbor_cells),
        vector_d_CE=d_CE,
        vector_E_f=E_f,
        vector_T_f=T_f,
        face_interp_factors=g_f,
        delta_coeffs=delta,
        patches=dict(patches),
        patch_types=dict(patch_types or {}),
    )
