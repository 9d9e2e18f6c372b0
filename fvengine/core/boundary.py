"""
Boundary conditions as a closed set of variants behind one coefficient contract.

For every face of its patch a boundary condition supplies

    face value    phi_b      = value_internal_coeffs    * phi_P + value_boundary_coeffs
    face gradient snGrad_b   = gradient_internal_coeffs * phi_P + gradient_boundary_coeffs

which is the only channel through which boundary physics enters the
assembled system. Coupled (processor) patches replace the boundary term by
the value of the remote cell: phi_b = w phi_P + (1 - w) phi_N.

Supported types
- fixedValue     : Dirichlet
- zeroGradient   : homogeneous Neumann
- fixedGradient  : Neumann
- mixed          : valueFraction * fixedValue + (1 - valueFraction) * fixedGradient
- empty          : no contribution (2D/1D reduction)
- calculated     : values assigned by the caller, not usable implicitly
- processor      : coupled partition interface (created by decomposition)
"""

import numpy as np

from fvengine.core.registry import SchemeRegistry
from fvengine.errors import ConfigurationError, TopologyMismatch

patch_field_types = SchemeRegistry("patchField")


class BoundaryCondition:
    coupled = False
    fixes_value = False

    # names of per-face parameters, sliced when the patch is decomposed
    face_parameters = ()

    def __init__(self, mesh, patch):
        self.mesh = mesh
        self.patch = patch
        self.faces = mesh.patch_faces(patch)
        self.face_cells = mesh.owner_cells[self.faces]

    # --- helpers ---------------------------------------------------------
    @property
    def size(self):
        return len(self.faces)

    def delta(self):
        return self.mesh.delta_coeffs[self.faces]

    def _per_face(self, value, value_shape, what):
        """Broadcast a uniform or per-face parameter to (n_faces, *value_shape)."""
        arr = np.asarray(value, dtype=np.float64)
        target = (self.size,) + tuple(value_shape)
        if arr.shape == target:
            return arr.copy()
        if arr.shape == tuple(value_shape):
            return np.broadcast_to(arr, target).copy()
        if arr.ndim == 0:
            return np.full(target, float(arr))
        raise TopologyMismatch(
            f"{what} on patch '{self.patch}' has shape {arr.shape}, expected "
            f"{tuple(value_shape)} or {target}"
        )

    def _expand(self, coeffs, vf):
        """Scalar-per-face coefficient -> (n_faces, *value_shape)."""
        coeffs = np.asarray(coeffs, dtype=np.float64)
        shape = (self.size,) + vf.value_shape
        if coeffs.shape == shape:
            return coeffs
        return np.broadcast_to(
            coeffs.reshape((self.size,) + (1,) * len(vf.value_shape)), shape
        ).copy()

    def internal_values(self, vf):
        return vf.values[self.face_cells]

    def bind(self, vf):
        """Called once the boundary condition is attached to a field."""
        for name in self.face_parameters:
            setattr(self, name, self._per_face(getattr(self, name), vf.value_shape, name))

    def remap(self, mesh, face_index):
        """Copy of this condition restricted to ``face_index`` of the patch, on ``mesh``."""
        clone = object.__new__(type(self))
        clone.__dict__.update(self.__dict__)
        BoundaryCondition.__init__(clone, mesh, self.patch)
        for name in self.face_parameters:
            setattr(clone, name, np.asarray(getattr(self, name))[face_index].copy())
        return clone

    # --- contract --------------------------------------------------------
    def evaluate(self, vf):
        raise NotImplementedError

    def sn_grad(self, vf):
        return self._expand(self.gradient_internal_coeffs(vf), vf) * self.internal_values(vf) + \
            self.gradient_boundary_coeffs(vf)

    def value_internal_coeffs(self, vf, weights=None):
        raise NotImplementedError

    def value_boundary_coeffs(self, vf, weights=None):
        raise NotImplementedError

    def gradient_internal_coeffs(self, vf, delta=None):
        raise NotImplementedError

    def gradient_boundary_coeffs(self, vf, delta=None):
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}(patch={self.patch!r})"


@patch_field_types.register("fixedValue")
class FixedValueBoundary(BoundaryCondition):
    fixes_value = True
    face_parameters = ("value",)

    def __init__(self, mesh, patch, value=0.0):
        super().__init__(mesh, patch)
        self.value = value

    def evaluate(self, vf):
        return self.value.copy()

    def value_internal_coeffs(self, vf, weights=None):
        return np.zeros((self.size,) + vf.value_shape)

    def value_boundary_coeffs(self, vf, weights=None):
        return self.value.copy()

    def gradient_internal_coeffs(self, vf, delta=None):
        delta = self.delta() if delta is None else delta
        return self._expand(-delta, vf)

    def gradient_boundary_coeffs(self, vf, delta=None):
        delta = self.delta() if delta is None else delta
        return self._expand(delta, vf) * self.value


@patch_field_types.register("zeroGradient")
class ZeroGradientBoundary(BoundaryCondition):
    def evaluate(self, vf):
        return self.internal_values(vf).copy()

    def value_internal_coeffs(self, vf, weights=None):
        return np.ones((self.size,) + vf.value_shape)

    def value_boundary_coeffs(self, vf, weights=None):
        return np.zeros((self.size,) + vf.value_shape)

    def gradient_internal_coeffs(self, vf, delta=None):
        return np.zeros((self.size,) + vf.value_shape)

    def gradient_boundary_coeffs(self, vf, delta=None):
        return np.zeros((self.size,) + vf.value_shape)


@patch_field_types.register("fixedGradient")
class FixedGradientBoundary(BoundaryCondition):
    face_parameters = ("gradient",)

    def __init__(self, mesh, patch, gradient=0.0):
        super().__init__(mesh, patch)
        self.gradient = gradient

    def evaluate(self, vf):
        return self.internal_values(vf) + self.gradient / self._expand(self.delta(), vf)

    def value_internal_coeffs(self, vf, weights=None):
        return np.ones((self.size,) + vf.value_shape)

    def value_boundary_coeffs(self, vf, weights=None):
        return self.gradient / self._expand(self.delta(), vf)

    def gradient_internal_coeffs(self, vf, delta=None):
        return np.zeros((self.size,) + vf.value_shape)

    def gradient_boundary_coeffs(self, vf, delta=None):
        return self.gradient.copy()


@patch_field_types.register("mixed")
class MixedBoundary(BoundaryCondition):
    fixes_value = True
    face_parameters = ("ref_value", "ref_gradient", "value_fraction")

    def __init__(self, mesh, patch, refValue=0.0, refGradient=0.0, valueFraction=1.0):
        super().__init__(mesh, patch)
        self.ref_value = refValue
        self.ref_gradient = refGradient
        self.value_fraction = valueFraction

    def bind(self, vf):
        super().bind(vf)
        if np.any((self.value_fraction < 0.0) | (self.value_fraction > 1.0)):
            raise ConfigurationError(
                f"valueFraction on patch '{self.patch}' of field '{vf.name}' must lie in [0, 1]"
            )

    def evaluate(self, vf):
        f = self.value_fraction
        delta = self._expand(self.delta(), vf)
        return f * self.ref_value + (1.0 - f) * (
            self.internal_values(vf) + self.ref_gradient / delta
        )

    def value_internal_coeffs(self, vf, weights=None):
        return 1.0 - self.value_fraction

    def value_boundary_coeffs(self, vf, weights=None):
        f = self.value_fraction
        delta = self._expand(self.delta(), vf)
        return f * self.ref_value + (1.0 - f) * self.ref_gradient / delta

    def gradient_internal_coeffs(self, vf, delta=None):
        delta = self.delta() if delta is None else delta
        return -self.value_fraction * self._expand(delta, vf)

    def gradient_boundary_coeffs(self, vf, delta=None):
        delta = self.delta() if delta is None else delta
        f = self.value_fraction
        return f * self._expand(delta, vf) * self.ref_value + (1.0 - f) * self.ref_gradient


@patch_field_types.register("empty")
class EmptyBoundary(BoundaryCondition):
    """Faces of reduced dimensions: the face value follows the cell, no fluxes."""

    def evaluate(self, vf):
        return self.internal_values(vf).copy()

    def value_internal_coeffs(self, vf, weights=None):
        return np.zeros((self.size,) + vf.value_shape)

    def value_boundary_coeffs(self, vf, weights=None):
        return np.zeros((self.size,) + vf.value_shape)

    def gradient_internal_coeffs(self, vf, delta=None):
        return np.zeros((self.size,) + vf.value_shape)

    def gradient_boundary_coeffs(self, vf, delta=None):
        return np.zeros((self.size,) + vf.value_shape)


@patch_field_types.register("calculated")
class CalculatedBoundary(BoundaryCondition):
    """Boundary values set by whoever computed the field."""

    def evaluate(self, vf):
        return vf.boundary_field[self.patch]

    def _not_implicit(self, vf):
        raise ConfigurationError(
            f"Patch '{self.patch}' of field '{vf.name}' has a calculated boundary "
            f"condition which cannot be used in an implicit operator; "
            f"specify a boundary condition type"
        )

    def value_internal_coeffs(self, vf, weights=None):
        self._not_implicit(vf)

    value_boundary_coeffs = value_internal_coeffs

    def gradient_internal_coeffs(self, vf, delta=None):
        self._not_implicit(vf)

    gradient_boundary_coeffs = gradient_internal_coeffs

    def sn_grad(self, vf):
        delta = self._expand(self.delta(), vf)
        return delta * (vf.boundary_field[self.patch] - self.internal_values(vf))


@patch_field_types.register("processor")
class ProcessorBoundary(BoundaryCondition):
    """
    Coupled interface to a neighbouring partition.

    ``neighbour_values`` and ``neighbour_gradient`` hold the halo: the remote
    cell values (and their gradients) across each face, filled in by the
    decomposition's exchange step.
    """

    coupled = True

    def __init__(self, mesh, patch):
        super().__init__(mesh, patch)
        info = mesh.coupled_patches[patch]
        self.neighbour_partition = info.neighbour_partition
        self.neighbour_values = None
        self.neighbour_gradient = None

    def bind(self, vf):
        if self.neighbour_values is None:
            self.neighbour_values = self.internal_values(vf).copy()

    def remap(self, mesh, face_index):
        raise TopologyMismatch(f"Processor patch '{self.patch}' cannot be decomposed again")

    def linear_weights(self):
        return 1.0 - self.mesh.face_interp_factors[self.faces]

    def patch_neighbour_values(self):
        return self.neighbour_values

    def patch_neighbour_gradient(self):
        if self.neighbour_gradient is None:
            raise TopologyMismatch(
                f"Gradient halo of processor patch '{self.patch}' was not exchanged"
            )
        return self.neighbour_gradient

    def evaluate(self, vf):
        w = self._expand(self.linear_weights(), vf)
        return w * self.internal_values(vf) + (1.0 - w) * self.neighbour_values

    def sn_grad(self, vf):
        delta = self._expand(self.delta(), vf)
        return delta * (self.neighbour_values - self.internal_values(vf))

    def value_internal_coeffs(self, vf, weights=None):
        w = self.linear_weights() if weights is None else weights
        return self._expand(w, vf)

    def value_boundary_coeffs(self, vf, weights=None):
        w = self.linear_weights() if weights is None else weights
        return self._expand(1.0 - w, vf)

    def gradient_internal_coeffs(self, vf, delta=None):
        delta = self.delta() if delta is None else delta
        return self._expand(-delta, vf)

    def gradient_boundary_coeffs(self, vf, delta=None):
        delta = self.delta() if delta is None else delta
        return self._expand(delta, vf)


_PARAMETER_KEYS = {
    "fixedValue": ("value",),
    "fixedGradient": ("gradient",),
    "mixed": ("refValue", "refGradient", "valueFraction"),
}


def new_boundary(mesh, patch, entry):
    """
    Construct a boundary condition from a config entry, e.g.
    ``{"type": "fixedValue", "value": 300.0}``.
    """
    if isinstance(entry, BoundaryCondition):
        return entry
    if isinstance(entry, str):
        entry = {"type": entry}
    entry = dict(entry)
    type_name = entry.pop("type", None)
    if type_name is None:
        raise ConfigurationError(f"No boundary condition type given for patch '{patch}'")
    cls = patch_field_types.lookup(type_name)
    allowed = _PARAMETER_KEYS.get(patch_field_types.canonical(type_name), ())
    unknown = sorted(set(entry) - set(allowed))
    if unknown:
        raise ConfigurationError(
            f"Unknown entries {unknown} for {type_name} on patch '{patch}'; "
            f"valid entries are {sorted(allowed)}"
        )
    return cls(mesh, patch, **entry)
