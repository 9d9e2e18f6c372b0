"""
Build MeshData from polygonal cells (triangles or quadrilaterals).

Cells are given as an (n_cells, n_vertices) connectivity array in
counter-clockwise order; boundary patches as edge lists. Every face is an
edge of unit depth, so face areas are edge lengths and cell volumes are
polygon areas.
"""

import numpy as np
from numba import njit

from fvengine.errors import TopologyMismatch
from fvengine.mesh.mesh_data import build_mesh_data

DEFAULT_PATCH = "defaultFaces"


# --- JIT-compatible face map construction ---
@njit
def _compute_face_map_jit(cells):
    n_faces_est = cells.shape[0] * cells.shape[1]
    face_pairs = np.empty((n_faces_est, 2), dtype=np.int64)
    face_owners = np.empty(n_faces_est, dtype=np.int64)
    count = 0
    for cid in range(cells.shape[0]):
        for i in range(cells.shape[1]):
            a = cells[cid, i]
            b = cells[cid, (i + 1) % cells.shape[1]]
            if a < b:
                face_pairs[count, 0] = a
                face_pairs[count, 1] = b
            else:
                face_pairs[count, 0] = b
                face_pairs[count, 1] = a
            face_owners[count] = cid
            count += 1
    return face_pairs[:count], face_owners[:count]


@njit
def _compute_face_map_kernel(face_pairs, face_owners, n_points):
    # Sort the face pairs lexicographically (stable, so the lower cell id comes first)
    keys = face_pairs[:, 0] * n_points + face_pairs[:, 1]
    order = np.argsort(keys, kind="mergesort")
    sorted_faces = face_pairs[order]
    sorted_owners = face_owners[order]

    n = sorted_faces.shape[0]
    unique_count = 1
    for i in range(1, n):
        if sorted_faces[i, 0] != sorted_faces[i - 1, 0] or sorted_faces[i, 1] != sorted_faces[i - 1, 1]:
            unique_count += 1

    face_keys = np.empty((unique_count, 2), dtype=np.int64)
    face_values = np.full((unique_count, 2), -1, dtype=np.int64)

    k = 0
    face_keys[0, 0] = sorted_faces[0, 0]
    face_keys[0, 1] = sorted_faces[0, 1]
    face_values[0, 0] = sorted_owners[0]
    count = 1

    for i in range(1, n):
        if sorted_faces[i, 0] == face_keys[k, 0] and sorted_faces[i, 1] == face_keys[k, 1]:
            if count == 1:
                face_values[k, 1] = sorted_owners[i]
            count += 1
        else:
            k += 1
            face_keys[k, 0] = sorted_faces[i, 0]
            face_keys[k, 1] = sorted_faces[i, 1]
            face_values[k, 0] = sorted_owners[i]
            count = 1

    return face_keys, face_values


def _polygon_geometry(points, cells):
    """Area and centroid of each polygon (shoelace formula)."""
    x = points[cells, 0]
    y = points[cells, 1]
    x1 = np.roll(x, -1, axis=1)
    y1 = np.roll(y, -1, axis=1)
    cross = x * y1 - x1 * y
    area = 0.5 * cross.sum(axis=1)
    if np.any(area <= 0.0):
        raise TopologyMismatch("Cells must be non-degenerate and ordered counter-clockwise")
    cx = ((x + x1) * cross).sum(axis=1) / (6.0 * area)
    cy = ((y + y1) * cross).sum(axis=1) / (6.0 * area)
    return area, np.column_stack([cx, cy])


def build_polygon_mesh(points, cells, boundary_edges, patch_types=None):
    """
    Create MeshData from 2D polygons.

    Parameters
    ----------
    points : ndarray (n_points, 2)
    cells : ndarray (n_cells, n_vertices)
        Counter-clockwise vertex indices.
    boundary_edges : dict
        Patch name -> sequence of (v0, v1) vertex pairs. Boundary edges not
        listed are collected into the 'defaultFaces' patch.
    patch_types : dict, optional
        Patch name -> 'patch' | 'wall' | 'empty'.
    """
    points = np.ascontiguousarray(points, dtype=np.float64)[:, :2]
    cells = np.ascontiguousarray(cells, dtype=np.int64)

    cell_volumes, cell_centers = _polygon_geometry(points, cells)
    face_pairs, face_owners = _compute_face_map_jit(cells)
    face_keys, face_values = _compute_face_map_kernel(face_pairs, face_owners, len(points))

    is_internal = face_values[:, 1] >= 0
    edge_patch = {}
    for name, edges in boundary_edges.items():
        for v0, v1 in edges:
            edge_patch[(min(v0, v1), max(v0, v1))] = name

    patch_order = list(boundary_edges)
    boundary_by_patch = {name: [] for name in patch_order}
    for k in np.flatnonzero(~is_internal):
        name = edge_patch.get((int(face_keys[k, 0]), int(face_keys[k, 1])), DEFAULT_PATCH)
        if name not in boundary_by_patch:
            boundary_by_patch[name] = []
            patch_order.append(name)
        boundary_by_patch[name].append(k)

    order = list(np.flatnonzero(is_internal))
    patches = {}
    for name in patch_order:
        start = len(order)
        order.extend(boundary_by_patch[name])
        patches[name] = np.arange(start, len(order), dtype=np.int64)
    order = np.asarray(order, dtype=np.int64)

    keys = face_keys[order]
    values = face_values[order]
    v0 = points[keys[:, 0]]
    v1 = points[keys[:, 1]]
    face_centers = 0.5 * (v0 + v1)
    edge = v1 - v0
    S = np.column_stack([edge[:, 1], -edge[:, 0]])

    owner = np.minimum(values[:, 0], np.where(values[:, 1] >= 0, values[:, 1], values[:, 0]))
    neighbour = np.where(values[:, 1] >= 0, np.maximum(values[:, 0], values[:, 1]), -1)

    # Orient S_f out of the owner cell
    outward = np.einsum("ij,ij->i", S, face_centers - cell_centers[owner])
    S[outward < 0.0] *= -1.0

    return build_mesh_data(
        cell_volumes, cell_centers, face_centers, S, owner, neighbour,
        patches, patch_types,
    )
