"""
Finite volume options: sources and constraints attached to equations by
configuration rather than by the model code.

Case entry::

    fvOptions:
      heater:
        type: semiImplicitSource
        field: T
        selectionMode: box
        box: {min: [0.0, 0.0], max: [0.2, 0.1]}
        volumeMode: absolute
        Su: 100.0
        Sp: 0.0
      clip:
        type: limitField
        field: T
        min: 0.0
        max: 500.0

Every option selects cells with ``selectionMode``: ``all`` (default),
``cells`` (explicit ids) or ``box`` (cell centres inside the box).
"""

import logging

import numpy as np

from fvengine.core.registry import SchemeRegistry
from fvengine.discretization.interpolation.base import expand
from fvengine.errors import ConfigurationError, TopologyMismatch

logger = logging.getLogger(__name__)

fv_option_types = SchemeRegistry("fvOption")

_COMMON_KEYS = ("type", "field", "fields", "active", "selectionMode", "cells", "box")


def select_cells(mesh, entry, name):
    mode = entry.get("selectionMode", "all")
    if mode == "all":
        return np.arange(mesh.n_cells)
    if mode == "cells":
        cells = np.asarray(entry.get("cells", []), dtype=np.int64)
        if cells.size and (cells.min() < 0 or cells.max() >= mesh.n_cells):
            raise TopologyMismatch(
                f"Option '{name}' selects cells outside the mesh (0..{mesh.n_cells - 1})"
            )
        return np.unique(cells)
    if mode == "box":
        box = entry.get("box")
        if not box or "min" not in box or "max" not in box:
            raise ConfigurationError(f"Option '{name}' needs box: {{min: [x, y], max: [x, y]}}")
        lo = np.asarray(box["min"], dtype=np.float64)
        hi = np.asarray(box["max"], dtype=np.float64)
        inside = np.all((mesh.cell_centers >= lo) & (mesh.cell_centers <= hi), axis=1)
        return np.flatnonzero(inside)
    raise ConfigurationError(
        f"Unknown selectionMode '{mode}' for option '{name}'; valid modes are ['all', 'box', 'cells']"
    )


class FvOption:
    type_name = None
    parameters = ()

    def __init__(self, mesh, name, entry):
        unknown = sorted(set(entry) - set(_COMMON_KEYS) - set(self.parameters))
        if unknown:
            raise ConfigurationError(
                f"Unknown entries {unknown} for {self.type_name} option '{name}'; "
                f"valid entries are {sorted(set(_COMMON_KEYS) | set(self.parameters))}"
            )
        self.mesh = mesh
        self.name = name
        self.active = bool(entry.get("active", True))
        fields = entry.get("fields", entry.get("field"))
        if fields is None:
            raise ConfigurationError(f"Option '{name}' does not name a field")
        self.field_names = [fields] if isinstance(fields, str) else list(fields)
        self.cells = select_cells(mesh, entry, name)
        if len(self.cells) == 0:
            logger.warning("Option '%s' selects no cells", name)

    def applies_to(self, field_name):
        return self.active and field_name in self.field_names

    def add_sources(self, eqn):
        pass

    def constrain(self, eqn):
        pass

    def correct(self, vf):
        pass

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r}, fields={self.field_names})"


@fv_option_types.register("semiImplicitSource")
class SemiImplicitSource(FvOption):
    """
    Source ``Su + Sp * phi`` on the right-hand side of the equation.
    ``volumeMode: specific`` gives the rates per unit volume,
    ``absolute`` the totals over the selected cells.
    """

    parameters = ("Su", "Sp", "volumeMode")

    def __init__(self, mesh, name, entry):
        super().__init__(mesh, name, entry)
        self.su = np.asarray(entry.get("Su", 0.0), dtype=np.float64)
        self.sp = float(entry.get("Sp", 0.0))
        mode = entry.get("volumeMode", "specific")
        if mode not in ("absolute", "specific"):
            raise ConfigurationError(
                f"Unknown volumeMode '{mode}' for option '{name}'; "
                f"valid modes are ['absolute', 'specific']"
            )
        self.volume_mode = mode

    def add_sources(self, eqn):
        V = self.mesh.cell_volumes[self.cells]
        scale = 1.0
        if self.volume_mode == "absolute":
            total = V.sum()
            scale = 1.0 / total if total > 0.0 else 0.0
        vs = eqn.value_shape
        eqn.source[self.cells] += expand(V * scale, vs) * np.broadcast_to(self.su, vs)
        eqn.diag[self.cells] -= V * scale * self.sp


@fv_option_types.register("fixedValueConstraint")
class FixedValueConstraint(FvOption):
    """Holds the field at ``value`` in the selected cells."""

    parameters = ("value",)

    def __init__(self, mesh, name, entry):
        super().__init__(mesh, name, entry)
        if "value" not in entry:
            raise ConfigurationError(f"Option '{name}' needs a value")
        self.value = np.asarray(entry["value"], dtype=np.float64)

    def constrain(self, eqn):
        eqn.set_values(self.cells, self.value)


@fv_option_types.register("limitField")
class LimitField(FvOption):
    """Clips the solved field to [min, max] in the selected cells."""

    parameters = ("min", "max")

    def __init__(self, mesh, name, entry):
        super().__init__(mesh, name, entry)
        self.min = float(entry.get("min", -np.inf))
        self.max = float(entry.get("max", np.inf))
        if self.min > self.max:
            raise ConfigurationError(
                f"Option '{name}' has min {self.min} greater than max {self.max}"
            )

    def correct(self, vf):
        values = vf.values[self.cells]
        clipped = np.clip(values, self.min, self.max)
        n_clipped = int(np.count_nonzero(clipped != values))
        if n_clipped:
            logger.info("%s: limited %d values of %s", self.name, n_clipped, vf.name)
            vf.values[self.cells] = clipped
            vf.correct_boundary_conditions()


class FvOptions:
    """Ordered collection of options, applied by field name."""

    def __init__(self, options=()):
        self.options = list(options)

    @classmethod
    def from_dict(cls, mesh, data):
        options = []
        for name, entry in (data or {}).items():
            entry = dict(entry)
            type_name = entry.get("type")
            if type_name is None:
                raise ConfigurationError(f"No type given for option '{name}'")
            option = fv_option_types.lookup(type_name)(mesh, name, entry)
            logger.debug("Selecting fvOption %s (%s)", name, type_name)
            options.append(option)
        return cls(options)

    def _for(self, field_name):
        return [option for option in self.options if option.applies_to(field_name)]

    def add_sources(self, eqn):
        for option in self._for(eqn.psi.name):
            option.add_sources(eqn)
        return eqn

    def constrain(self, eqn):
        for option in self._for(eqn.psi.name):
            option.constrain(eqn)
        return eqn

    def correct(self, vf):
        for option in self._for(vf.name):
            option.correct(vf)
        return vf

    def __len__(self):
        return len(self.options)

    def __iter__(self):
        return iter(self.options)
