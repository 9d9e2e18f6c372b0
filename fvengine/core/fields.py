"""
Cell- and face-centred fields.

A VolField stores one value per cell, shaped ``(n_cells, *value_shape)``
where ``value_shape`` is ``()`` (scalar), ``(2,)`` (vector) or ``(2, 2)``
(tensor). The same code paths serve every rank: all per-face and per-cell
arithmetic broadcasts over the trailing value axes.
"""

import logging

import numpy as np

from fvengine.core.boundary import new_boundary
from fvengine.core.dimensions import DimensionedScalar, DimensionSet, dimless
from fvengine.errors import ConfigurationError, TopologyMismatch
from fvengine.mesh.mesh_data import EMPTY, PROCESSOR

logger = logging.getLogger(__name__)

_VALUE_SHAPES = ((), (2,), (2, 2))


def _check_value_shape(name, value_shape):
    if tuple(value_shape) not in _VALUE_SHAPES:
        raise TopologyMismatch(
            f"Field '{name}' has value shape {tuple(value_shape)}; "
            f"supported shapes are {list(_VALUE_SHAPES)}"
        )


def _as_dimensions(dimensions):
    if dimensions is None:
        return dimless
    if isinstance(dimensions, DimensionSet):
        return dimensions
    return DimensionSet.from_sequence(dimensions)


class VolField:
    """Cell-centred field with one boundary condition per patch."""

    def __init__(self, name, mesh, values, dimensions=None, boundary=None):
        values = np.array(values, dtype=np.float64)
        if values.ndim == 0:
            raise TopologyMismatch(
                f"Field '{name}' needs one value per cell; use VolField.uniform for a constant"
            )
        mesh.check_cell_array(values, f"Field '{name}'")
        _check_value_shape(name, values.shape[1:])

        self.name = name
        self.mesh = mesh
        self.values = values
        self.dimensions = _as_dimensions(dimensions)

        self._old = None
        self._prev_iter = None

        boundary = dict(boundary or {})
        unknown = sorted(set(boundary) - set(mesh.patch_names()))
        if unknown:
            raise ConfigurationError(
                f"Field '{name}' sets boundary conditions on unknown patches {unknown}; "
                f"mesh patches are {sorted(mesh.patch_names())}"
            )

        self.boundary = {}
        self.boundary_field = {}
        for patch in mesh.patch_names():
            entry = boundary.get(patch)
            patch_type = mesh.patch_types.get(patch)
            if patch_type == PROCESSOR:
                entry = entry if entry is not None else "processor"
            elif patch_type == EMPTY:
                entry = "empty"
            elif entry is None:
                entry = "calculated"
            bc = new_boundary(mesh, patch, entry)
            bc.bind(self)
            self.boundary[patch] = bc
            self.boundary_field[patch] = values[mesh.patch_cells(patch)].copy()

        self.correct_boundary_conditions()

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def uniform(cls, name, mesh, value, dimensions=None, boundary=None):
        value = np.asarray(value, dtype=np.float64)
        values = np.broadcast_to(value, (mesh.n_cells,) + value.shape).copy()
        return cls(name, mesh, values, dimensions, boundary)

    @classmethod
    def calculated(cls, name, mesh, values, dimensions=None, boundary_values=None):
        """Result field of an explicit operation; boundary values given or taken from cells."""
        field = cls(name, mesh, values, dimensions)
        for patch, patch_values in (boundary_values or {}).items():
            if patch in field.boundary_field and mesh.patch_types.get(patch) != EMPTY:
                field.boundary_field[patch] = np.array(patch_values, dtype=np.float64)
        return field

    @classmethod
    def from_config(cls, name, mesh, entry):
        """
        Build a field from a case entry::

            dimensions: [0, 0, 0, 1, 0, 0, 0]
            internalField: 300.0
            boundaryField:
              left: {type: fixedValue, value: 400.0}
              right: {type: zeroGradient}
        """
        if "internalField" not in entry:
            raise ConfigurationError(f"Field '{name}' has no internalField entry")
        internal = np.asarray(entry["internalField"], dtype=np.float64)
        if internal.ndim == 0 or internal.shape in _VALUE_SHAPES[1:]:
            values = np.broadcast_to(internal, (mesh.n_cells,) + internal.shape).copy()
        else:
            values = internal
        return cls(
            name, mesh, values,
            dimensions=entry.get("dimensions"),
            boundary=entry.get("boundaryField"),
        )

    # ------------------------------------------------------------------
    @property
    def value_shape(self):
        return self.values.shape[1:]

    @property
    def rank(self):
        return len(self.value_shape)

    @property
    def n_components(self):
        return int(np.prod(self.value_shape, dtype=np.int64))

    def assign(self, values):
        values = np.asarray(values, dtype=np.float64)
        if values.shape != self.values.shape:
            raise TopologyMismatch(
                f"Cannot assign values of shape {values.shape} to field '{self.name}' "
                f"of shape {self.values.shape}"
            )
        self.values[...] = values

    def correct_boundary_conditions(self):
        for patch, bc in self.boundary.items():
            self.boundary_field[patch] = np.asarray(bc.evaluate(self), dtype=np.float64)

    def face_values(self):
        """Boundary values laid out on the face index space (internal faces zero)."""
        out = np.zeros((self.mesh.n_faces,) + self.value_shape)
        for patch, values in self.boundary_field.items():
            out[self.mesh.patch_faces(patch)] = values
        return out

    def coupled_patches(self):
        return [patch for patch, bc in self.boundary.items() if bc.coupled]

    # ------------------------------------------------------------------
    # Time and iteration levels
    # ------------------------------------------------------------------
    def copy(self, name=None):
        clone = object.__new__(VolField)
        clone.name = self.name if name is None else name
        clone.mesh = self.mesh
        clone.values = self.values.copy()
        clone.dimensions = self.dimensions
        clone.boundary = self.boundary
        clone.boundary_field = {p: v.copy() for p, v in self.boundary_field.items()}
        clone._old = None
        clone._prev_iter = None
        return clone

    def store_old_time(self):
        """Shift time levels: old-old <- old <- current."""
        previous = self._old
        self._old = self.copy(f"{self.name}_0")
        self._old._old = previous
        if previous is not None:
            previous._old = None

    def n_old_times(self):
        count = 0
        level = self._old
        while level is not None:
            count += 1
            level = level._old
        return count

    def old_time(self):
        return self._old if self._old is not None else self

    def old_old_time(self):
        old = self.old_time()
        return old._old if old._old is not None else old

    def store_prev_iter(self):
        self._prev_iter = self.copy(f"{self.name}PrevIter")

    def prev_iter(self):
        return self._prev_iter if self._prev_iter is not None else self

    def __repr__(self):
        return (
            f"VolField(name={self.name!r}, shape={self.values.shape}, "
            f"dimensions={self.dimensions})"
        )


class SurfaceField:
    """Face-centred field, e.g. a volumetric flux or an interpolate."""

    def __init__(self, name, mesh, values, dimensions=None):
        values = np.array(values, dtype=np.float64)
        if values.ndim == 0:
            values = np.full(mesh.n_faces, float(values))
        mesh.check_face_array(values, f"Surface field '{name}'")
        _check_value_shape(name, values.shape[1:])
        self.name = name
        self.mesh = mesh
        self.values = values
        self.dimensions = _as_dimensions(dimensions)

    @property
    def value_shape(self):
        return self.values.shape[1:]

    def internal(self):
        return self.values[: self.mesh.n_internal]

    def patch(self, name):
        return self.values[self.mesh.patch_faces(name)]

    def copy(self, name=None):
        return SurfaceField(self.name if name is None else name, self.mesh,
                            self.values.copy(), self.dimensions)

    def __repr__(self):
        return (
            f"SurfaceField(name={self.name!r}, shape={self.values.shape}, "
            f"dimensions={self.dimensions})"
        )


def as_face_coefficient(mesh, gamma, name="gamma"):
    """
    Resolve a diffusivity-like coefficient to per-face values and dimensions.

    Accepts a number, a DimensionedScalar, a SurfaceField or a VolField
    (linearly interpolated, boundary faces take the boundary value).
    """
    if isinstance(gamma, SurfaceField):
        return gamma.values, gamma.dimensions
    if isinstance(gamma, DimensionedScalar):
        return np.full(mesh.n_faces, float(gamma.value)), gamma.dimensions
    if isinstance(gamma, VolField):
        g = mesh.face_interp_factors
        P = mesh.owner_cells
        values = np.zeros((mesh.n_faces,) + gamma.value_shape)
        n_int = mesh.n_internal
        N = mesh.neighbor_cells[:n_int]
        w = (1.0 - g[:n_int]).reshape((-1,) + (1,) * gamma.rank)
        values[:n_int] = w * gamma.values[P[:n_int]] + (1.0 - w) * gamma.values[N]
        for patch, bvalues in gamma.boundary_field.items():
            values[mesh.patch_faces(patch)] = bvalues
        return values, gamma.dimensions
    arr = np.asarray(gamma, dtype=np.float64)
    if arr.ndim == 0:
        return np.full(mesh.n_faces, float(arr)), dimless
    raise ConfigurationError(
        f"Cannot use {type(gamma).__name__} as face coefficient '{name}'"
    )


def as_cell_coefficient(mesh, coeff, name="coefficient"):
    """Resolve a source-like coefficient to per-cell values and dimensions."""
    if isinstance(coeff, VolField):
        return coeff.values, coeff.dimensions
    if isinstance(coeff, DimensionedScalar):
        return np.full(mesh.n_cells, float(coeff.value)), coeff.dimensions
    arr = np.asarray(coeff, dtype=np.float64)
    if arr.ndim == 0:
        return np.full(mesh.n_cells, float(arr)), dimless
    if arr.shape[0] != mesh.n_cells:
        raise TopologyMismatch(
            f"{name} has {arr.shape[0]} entries but the mesh has {mesh.n_cells} cells"
        )
    return arr, dimless
