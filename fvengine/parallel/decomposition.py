"""
In-process domain decomposition.

``decompose`` splits a mesh into partitions, each a complete MeshData of
its own with processor patches on the cut faces:

- internal faces with both cells in the partition stay internal;
- boundary faces stay on their patch (patches are kept even when empty);
- cut faces go to ``procBoundary<p>to<q>``, sorted by global face id. A cut
  face whose global owner lies in the other partition is flipped: its area
  vector and geometry change sign and its interpolation factor becomes
  ``1 - g``.

Fields are distributed patch by patch and the halo (remote cell values and
gradients) is exchanged through the processor boundary conditions, the
in-process stand-in for the inter-process transfer of a parallel run.
"""

import logging
from dataclasses import dataclass

import numpy as np

from fvengine.core.fields import SurfaceField, VolField
from fvengine.errors import ConfigurationError, TopologyMismatch
from fvengine.mesh.mesh_data import PROCESSOR, MeshData, ProcessorPatch, compute_cell_faces

logger = logging.getLogger(__name__)


def processor_patch_name(p, q):
    return f"procBoundary{p}to{q}"


def simple_partition(mesh, n_parts):
    """Contiguous slabs along x (then y) with equal cell counts."""
    order = np.lexsort((mesh.cell_centers[:, 1], mesh.cell_centers[:, 0]))
    cell_partition = np.empty(mesh.n_cells, dtype=np.int64)
    for p, chunk in enumerate(np.array_split(order, n_parts)):
        cell_partition[chunk] = p
    return cell_partition


@dataclass
class Partition:
    """One partition: its mesh and the maps back to the global mesh."""

    index: int
    mesh: MeshData
    cell_map: np.ndarray
    face_map: np.ndarray
    # position of every local face of an original patch within that global patch
    patch_face_index: dict


def _build_partition(mesh, cell_partition, p):
    cell_map = np.flatnonzero(cell_partition == p)
    local_cell = np.full(mesh.n_cells, -1, dtype=np.int64)
    local_cell[cell_map] = np.arange(len(cell_map))

    n_int = mesh.n_internal
    P = mesh.owner_cells
    N = mesh.neighbor_cells
    part_P = cell_partition[P]
    part_N = np.where(N >= 0, cell_partition[np.maximum(N, 0)], -1)

    internal = np.flatnonzero((part_P[:n_int] == p) & (part_N[:n_int] == p))

    face_map = [internal]
    flipped = [np.zeros(len(internal), dtype=bool)]
    patches = {}
    patch_types = {}
    patch_face_index = {}
    offset = len(internal)

    for name, faces in mesh.patches.items():
        keep = np.flatnonzero(part_P[faces] == p)
        patch_face_index[name] = keep
        patches[name] = np.arange(offset, offset + len(keep))
        patch_types[name] = mesh.patch_types[name]
        face_map.append(faces[keep])
        flipped.append(np.zeros(len(keep), dtype=bool))
        offset += len(keep)

    cut = np.arange(n_int)[(part_P[:n_int] == p) ^ (part_N[:n_int] == p)]
    remote = np.where(part_P[cut] == p, part_N[cut], part_P[cut])
    coupled = {}
    for q in np.unique(remote):
        faces = cut[remote == q]
        flip = part_P[faces] != p
        name = processor_patch_name(p, int(q))
        patches[name] = np.arange(offset, offset + len(faces))
        patch_types[name] = PROCESSOR
        remote_global = np.where(flip, P[faces], N[faces])
        coupled[name] = ProcessorPatch(
            my_partition=p,
            neighbour_partition=int(q),
            global_faces=faces,
            flipped=flip,
            neighbour_cells=remote_global,
        )
        face_map.append(faces)
        flipped.append(flip)
        offset += len(faces)

    face_map = np.concatenate(face_map)
    flipped = np.concatenate(flipped)
    sign = np.where(flipped, -1.0, 1.0)[:, None]

    owner = np.where(flipped, N[face_map], P[face_map])
    neighbour = np.full(len(face_map), -1, dtype=np.int64)
    neighbour[: len(internal)] = local_cell[N[internal]]
    g = mesh.face_interp_factors[face_map]

    local = MeshData(
        cell_volumes=mesh.cell_volumes[cell_map],
        cell_centers=mesh.cell_centers[cell_map],
        face_areas=mesh.face_areas[face_map],
        face_centers=mesh.face_centers[face_map],
        vector_S_f=sign * mesh.vector_S_f[face_map],
        owner_cells=local_cell[owner],
        neighbor_cells=neighbour,
        cell_faces=compute_cell_faces(len(cell_map), local_cell[owner], neighbour),
        vector_d_CE=sign * mesh.vector_d_CE[face_map],
        vector_E_f=sign * mesh.vector_E_f[face_map],
        vector_T_f=sign * mesh.vector_T_f[face_map],
        face_interp_factors=np.where(flipped, 1.0 - g, g),
        delta_coeffs=mesh.delta_coeffs[face_map],
        patches=patches,
        patch_types=patch_types,
        coupled_patches=coupled,
    )
    return Partition(p, local, cell_map, face_map, patch_face_index), flipped


class DomainDecomposition:
    def __init__(self, mesh, cell_partition):
        cell_partition = np.asarray(cell_partition, dtype=np.int64)
        mesh.check_cell_array(cell_partition, "Cell partition")
        if any(mesh.is_coupled(name) for name in mesh.patch_names()):
            raise TopologyMismatch("Cannot decompose a mesh that already has processor patches")
        self.mesh = mesh
        self.cell_partition = cell_partition
        self.n_parts = int(cell_partition.max()) + 1 if mesh.n_cells else 0

        self.partitions = []
        self._flipped = []
        for p in range(self.n_parts):
            partition, flipped = _build_partition(mesh, cell_partition, p)
            if partition.mesh.n_cells == 0:
                raise ConfigurationError(f"Partition {p} of {self.n_parts} has no cells")
            self.partitions.append(partition)
            self._flipped.append(flipped)

        # remote cells as local ids of the neighbouring partition
        for partition in self.partitions:
            for info in partition.mesh.coupled_patches.values():
                remote = self.partitions[info.neighbour_partition]
                info.neighbour_cells = np.searchsorted(remote.cell_map, info.neighbour_cells)

        logger.info(
            "Decomposed %d cells into %d partitions: %s", mesh.n_cells, self.n_parts,
            [partition.mesh.n_cells for partition in self.partitions],
        )

    def __len__(self):
        return self.n_parts

    def __iter__(self):
        return iter(self.partitions)

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------
    def distribute(self, vf):
        """Local copies of a VolField (old-time levels included) with the halo exchanged."""
        if vf.mesh is not self.mesh:
            raise TopologyMismatch(f"Field '{vf.name}' is not defined on the decomposed mesh")
        local_fields = []
        for partition in self.partitions:
            boundary = {
                name: bc.remap(partition.mesh, partition.patch_face_index[name])
                for name, bc in vf.boundary.items()
            }
            local = VolField(
                vf.name, partition.mesh, vf.values[partition.cell_map],
                vf.dimensions, boundary,
            )
            levels = [vf.old_time(), vf.old_old_time()][: vf.n_old_times()]
            # oldest level first, each store shifts the previous one back
            for level in reversed(levels):
                local.values[...] = level.values[partition.cell_map]
                local.store_old_time()
            local.values[...] = vf.values[partition.cell_map]
            local_fields.append(local)

        self.exchange(local_fields)
        return local_fields

    def distribute_flux(self, flux):
        """Local copies of a face field; flipped cut faces change sign."""
        values = flux.values if isinstance(flux, SurfaceField) else np.asarray(flux)
        self.mesh.check_face_array(values, "Face flux")
        name = flux.name if isinstance(flux, SurfaceField) else "phi"
        dims = flux.dimensions if isinstance(flux, SurfaceField) else None
        local_fluxes = []
        for partition, flipped in zip(self.partitions, self._flipped):
            local = values[partition.face_map].copy()
            local[flipped] *= -1.0
            local_fluxes.append(SurfaceField(name, partition.mesh, local, dims))
        return local_fluxes

    def exchange(self, local_fields):
        """Fill the processor halos with the remote cell values and re-evaluate the boundaries."""
        for local in local_fields:
            for bc in local.boundary.values():
                if bc.coupled:
                    info = local.mesh.coupled_patches[bc.patch]
                    remote = local_fields[info.neighbour_partition]
                    bc.neighbour_values = remote.values[info.neighbour_cells].copy()
        for local in local_fields:
            local.correct_boundary_conditions()

    def exchange_gradients(self, local_fields, local_gradients):
        """Fill the gradient halos from per-partition cell gradients."""
        for local in local_fields:
            for bc in local.boundary.values():
                if bc.coupled:
                    info = local.mesh.coupled_patches[bc.patch]
                    remote = local_gradients[info.neighbour_partition]
                    bc.neighbour_gradient = remote[info.neighbour_cells].copy()

    def reconstruct(self, local_fields, target=None):
        """Global cell values from the partition fields, written into ``target`` if given."""
        first = local_fields[0]
        values = np.empty((self.mesh.n_cells,) + first.value_shape)
        for partition, local in zip(self.partitions, local_fields):
            values[partition.cell_map] = local.values
        if target is not None:
            target.values[...] = values
            target.correct_boundary_conditions()
        return values


def decompose(mesh, n_parts, method="simple", cell_partition=None):
    """
    Decompose ``mesh`` into ``n_parts`` partitions.

    ``method`` is ``simple`` (equal slabs along x) or ``manual`` (an explicit
    partition index per cell in ``cell_partition``).
    """
    if method == "simple":
        if n_parts < 1 or n_parts > mesh.n_cells:
            raise ConfigurationError(
                f"Cannot split {mesh.n_cells} cells into {n_parts} partitions"
            )
        cell_partition = simple_partition(mesh, n_parts)
    elif method == "manual":
        if cell_partition is None:
            raise ConfigurationError("Manual decomposition needs a cell_partition array")
        cell_partition = np.asarray(cell_partition, dtype=np.int64)
        if cell_partition.size and (cell_partition.min() < 0 or cell_partition.max() >= n_parts):
            raise ConfigurationError(f"Partition indices must lie in [0, {n_parts - 1}]")
    else:
        raise ConfigurationError(
            f"Unknown decomposition method '{method}'; valid methods are ['manual', 'simple']"
        )
    return DomainDecomposition(mesh, cell_partition)
