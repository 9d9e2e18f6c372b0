"""
Inter-equation coupling through an exchange coefficient.

A CouplingTerm moves ``Q = K V (phi_b - phi_a)`` from equation b into
equation a, as in the interphase heat transfer of two-phase energy
equations. The quantity added to one equation is the exact negative of the
quantity added to the other, so the exchange sums to zero bit for bit.
"""

import logging

import numpy as np

from fvengine.assembly.fv_matrix import EquationMatrix
from fvengine.core.dimensions import dimVolume
from fvengine.core.fields import as_cell_coefficient
from fvengine.discretization.interpolation.base import expand
from fvengine.errors import ConfigurationError, TopologyMismatch

logger = logging.getLogger(__name__)


class CouplingTerm:
    def __init__(self, coefficient, field_a, field_b, implicit=True):
        if field_a.mesh is not field_b.mesh:
            raise TopologyMismatch(
                f"Coupled fields '{field_a.name}' and '{field_b.name}' live on different meshes"
            )
        if field_a.value_shape != field_b.value_shape:
            raise TopologyMismatch(
                f"Coupled fields '{field_a.name}' {field_a.value_shape} and "
                f"'{field_b.name}' {field_b.value_shape} differ in shape"
            )
        if field_a.dimensions != field_b.dimensions:
            raise ConfigurationError(
                f"Coupled fields '{field_a.name}' {field_a.dimensions} and "
                f"'{field_b.name}' {field_b.dimensions} differ in dimensions"
            )
        self.coefficient = coefficient
        self.field_a = field_a
        self.field_b = field_b
        self.implicit = implicit
        self.mesh = field_a.mesh

    def exchange_coefficient(self):
        """K V per cell and the dimensions of K."""
        values, dims = as_cell_coefficient(self.mesh, self.coefficient, "exchange coefficient")
        if values.ndim != 1:
            raise ConfigurationError("Exchange coefficient must be scalar per cell")
        return values * self.mesh.cell_volumes, dims

    def contribution(self):
        """
        Exchanged quantity per cell at the current field values,
        ``K V (phi_b - phi_a)`` for a; b receives exactly its negative.
        """
        kv, _ = self.exchange_coefficient()
        kv = expand(kv, self.field_a.value_shape)
        return kv * self.field_b.values - kv * self.field_a.values

    def _term(self, own, partner, kv, dims, exchanged):
        term = EquationMatrix(
            own, dims * own.dimensions * dimVolume,
            name=f"exchange({own.name},{partner.name})",
        )
        if self.implicit:
            term.diag += kv
            term.source += expand(kv, own.value_shape) * partner.values
        else:
            term.source += exchanged
        return term

    def apply(self, eqn_a, eqn_b):
        """
        Add the exchange to both equations and return the explicit exchange
        of this pass (a's share; b's share is its negative).
        """
        if eqn_a.psi is not self.field_a or eqn_b.psi is not self.field_b:
            raise ConfigurationError(
                f"Coupling of '{self.field_a.name}' and '{self.field_b.name}' applied to "
                f"equations '{eqn_a.name}' and '{eqn_b.name}'"
            )
        kv, dims = self.exchange_coefficient()
        exchanged = self.contribution()
        eqn_a += self._term(self.field_a, self.field_b, kv, dims, exchanged)
        eqn_b += self._term(self.field_b, self.field_a, kv, dims, -exchanged)
        logger.debug(
            "Exchange %s <-> %s: %g", self.field_a.name, self.field_b.name,
            float(np.sum(exchanged)),
        )
        return exchanged

    def __repr__(self):
        mode = "implicit" if self.implicit else "explicit"
        return f"CouplingTerm({self.field_a.name!r}, {self.field_b.name!r}, {mode})"
