"""
SimulationContext: the explicit owner of everything an assembly call may read.

Operators never look anything up globally. The mesh, the registered fields,
the scheme table, the solution controls and the time state are all reached
through the context passed as the first argument of every fvm/fvc call.
"""

import logging

from fvengine.config import SchemesConfig, SolutionConfig
from fvengine.core.fields import VolField
from fvengine.core.registry import SchemeStream
from fvengine.core.time import TimeState
from fvengine.discretization.registry import (
    ddt_schemes,
    div_schemes,
    grad_schemes,
    interpolation_schemes,
    laplacian_schemes,
    sn_grad_schemes,
)
from fvengine.errors import ConfigurationError, unknown_entry_message

logger = logging.getLogger(__name__)


class SchemeTable:
    """Constructs schemes on first use from the scheme config and caches them per term key."""

    def __init__(self, mesh, config):
        self.mesh = mesh
        self.config = config if isinstance(config, SchemesConfig) else SchemesConfig.from_dict(config)
        self._cache = {}

    def _select(self, registry, section, key, scheme=None):
        entry = scheme if scheme is not None else self.config.lookup(section, key)
        cache_key = (section, entry)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached
        stream = SchemeStream(entry)
        constructed = registry.new(self.mesh, stream, schemes=self)
        stream.check_consumed()
        logger.debug("%s %s: %s", section, key, entry)
        self._cache[cache_key] = constructed
        return constructed

    def interpolation(self, key, scheme=None):
        return self._select(interpolation_schemes, "interpolationSchemes", key, scheme)

    def grad(self, key, scheme=None):
        return self._select(grad_schemes, "gradSchemes", key, scheme)

    def sn_grad(self, key, scheme=None):
        return self._select(sn_grad_schemes, "snGradSchemes", key, scheme)

    def ddt(self, key, scheme=None):
        return self._select(ddt_schemes, "ddtSchemes", key, scheme)

    def div(self, key, scheme=None):
        return self._select(div_schemes, "divSchemes", key, scheme)

    def laplacian(self, key, scheme=None):
        return self._select(laplacian_schemes, "laplacianSchemes", key, scheme)

    def clear(self):
        self._cache.clear()


class SimulationContext:
    def __init__(self, mesh, schemes=None, solution=None, time=None):
        self.mesh = mesh
        self.schemes = SchemeTable(mesh, schemes or SchemesConfig())
        self.solution = (
            solution if isinstance(solution, SolutionConfig)
            else SolutionConfig.from_dict(solution)
        )
        self.time = time if time is not None else TimeState()
        self._fields = {}

    @classmethod
    def from_case(cls, mesh, case):
        """Context from a CaseConfig, with all fields of the case registered."""
        ctx = cls(
            mesh, case.schemes, case.solution,
            TimeState(value=case.start_time, delta_t=case.delta_t, delta_t0=case.delta_t),
        )
        for name, entry in case.fields.items():
            ctx.register(VolField.from_config(name, mesh, entry))
        return ctx

    # --- field registry ---------------------------------------------------
    def register(self, field):
        if field.mesh is not self.mesh:
            raise ConfigurationError(
                f"Field '{field.name}' is bound to a different mesh than this context"
            )
        self._fields[field.name] = field
        return field

    def lookup(self, name):
        field = self._fields.get(name)
        if field is None:
            raise ConfigurationError(unknown_entry_message("field", name, self._fields))
        return field

    def __contains__(self, name):
        return name in self._fields

    def field_names(self):
        return sorted(self._fields)

    # --- controls ---------------------------------------------------------
    def solver_controls(self, name):
        return self.solution.solver_controls(name)

    def relaxation_factor(self, name):
        return self.solution.relaxation_factor(name)

    @property
    def delta_t(self):
        return self.time.delta_t

    def advance_time(self):
        """Store the old-time level of every registered field and advance the clock."""
        for field in self._fields.values():
            field.store_old_time()
        value = self.time.advance()
        logger.info("Time = %g", value)
        return value

    def __repr__(self):
        return f"SimulationContext(mesh={self.mesh!r}, fields={self.field_names()})"
