"""Case configuration: discretisation schemes, solver controls and relaxation.

Configuration is a YAML mapping with OpenFOAM-style sections::

    schemes:
      ddtSchemes:        {default: Euler}
      gradSchemes:       {default: Gauss linear}
      divSchemes:
        default: none
        div(phi,T): Gauss limitedLinear 1
      laplacianSchemes:  {default: Gauss linear corrected}
      interpolationSchemes: {default: linear}
      snGradSchemes:     {default: corrected}
    solution:
      solvers:
        T: {solver: PBiCGStab, tolerance: 1e-8, relTol: 0.01}
      relaxationFactors:
        equations: {T: 0.9}
    time: {deltaT: 0.1, startTime: 0}
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional

import yaml

from fvengine.errors import ConfigurationError

SCHEME_SECTIONS = (
    "ddtSchemes",
    "gradSchemes",
    "divSchemes",
    "laplacianSchemes",
    "interpolationSchemes",
    "snGradSchemes",
)


def _match_key(entries, key):
    """Exact key first, then keys used as regular expressions (e.g. ``"(T|Ta)"``)."""
    if key in entries:
        return entries[key]
    for pattern, value in entries.items():
        if pattern == "default":
            continue
        try:
            if re.fullmatch(pattern, key):
                return value
        except re.error:
            continue
    return None


# ========================================================
# Schemes
# ========================================================


@dataclass
class SchemesConfig:
    """Per-section mapping of term key -> scheme token string."""

    sections: Dict[str, Dict[str, str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data):
        data = dict(data or {})
        unknown = sorted(set(data) - set(SCHEME_SECTIONS))
        if unknown:
            raise ConfigurationError(
                f"Unknown scheme sections {unknown}; valid sections are {sorted(SCHEME_SECTIONS)}"
            )
        sections = {}
        for name, entries in data.items():
            sections[name] = {str(k): str(v) for k, v in (entries or {}).items()}
        return cls(sections)

    def lookup(self, section, key):
        if section not in SCHEME_SECTIONS:
            raise ConfigurationError(
                f"Unknown scheme section '{section}'; valid sections are {sorted(SCHEME_SECTIONS)}"
            )
        entries = self.sections.get(section)
        if entries is None:
            raise ConfigurationError(f"Scheme section '{section}' is not defined")
        value = _match_key(entries, key)
        if value is not None:
            return value
        default = entries.get("default")
        if default is None or default.strip() == "none":
            raise ConfigurationError(
                f"Keyword '{key}' is undefined in {section} and no default is given; "
                f"defined keys are {sorted(k for k in entries if k != 'default')}"
            )
        return default


# ========================================================
# Solver controls
# ========================================================


@dataclass
class SolverControls:
    """Linear solver and outer-loop controls of one equation."""

    solver: str = "direct"
    preconditioner: str = "none"
    tolerance: float = 1.0e-6
    rel_tol: float = 0.0
    max_iter: int = 1000
    n_outer_correctors: int = 0
    outer_tolerance: float = 0.0
    divergence_threshold: float = 1.0

    _KEYS = {
        "solver": "solver",
        "preconditioner": "preconditioner",
        "tolerance": "tolerance",
        "relTol": "rel_tol",
        "maxIter": "max_iter",
        "nOuterCorrectors": "n_outer_correctors",
        "outerTolerance": "outer_tolerance",
        "divergenceThreshold": "divergence_threshold",
    }

    def __post_init__(self):
        self.tolerance = float(self.tolerance)
        self.rel_tol = float(self.rel_tol)
        self.max_iter = int(self.max_iter)
        self.n_outer_correctors = int(self.n_outer_correctors)
        self.outer_tolerance = float(self.outer_tolerance)
        self.divergence_threshold = float(self.divergence_threshold)
        if self.n_outer_correctors < 0:
            raise ConfigurationError(
                f"nOuterCorrectors must be non-negative, got {self.n_outer_correctors}"
            )
        if self.max_iter < 1:
            raise ConfigurationError(f"maxIter must be at least 1, got {self.max_iter}")

    @classmethod
    def from_dict(cls, data, name=None):
        data = dict(data or {})
        unknown = sorted(set(data) - set(cls._KEYS))
        if unknown:
            where = f" of '{name}'" if name else ""
            raise ConfigurationError(
                f"Unknown solver control entries {unknown}{where}; "
                f"valid entries are {sorted(cls._KEYS)}"
            )
        return cls(**{cls._KEYS[k]: v for k, v in data.items()})

    def to_dict(self):
        return {key: getattr(self, attr) for key, attr in self._KEYS.items()}


# ========================================================
# Solution (solvers + relaxation)
# ========================================================


@dataclass
class SolutionConfig:
    solvers: Dict[str, dict] = field(default_factory=dict)
    relaxation: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data):
        data = dict(data or {})
        relaxation = (data.get("relaxationFactors") or {}).get("equations") or {}
        return cls(
            solvers={str(k): dict(v or {}) for k, v in (data.get("solvers") or {}).items()},
            relaxation={str(k): float(v) for k, v in relaxation.items()},
        )

    def solver_controls(self, name):
        entry = _match_key(self.solvers, name)
        return SolverControls.from_dict(entry, name)

    def relaxation_factor(self, name) -> Optional[float]:
        """Equation relaxation factor, None when no entry (and no default) exists."""
        factor = _match_key(self.relaxation, name)
        if factor is None:
            factor = self.relaxation.get("default")
        if factor is not None and not 0.0 <= factor <= 1.0:
            raise ConfigurationError(
                f"Relaxation factor of '{name}' must lie in [0, 1], got {factor}"
            )
        return factor


# ========================================================
# Case
# ========================================================


@dataclass
class CaseConfig:
    schemes: SchemesConfig = field(default_factory=SchemesConfig)
    solution: SolutionConfig = field(default_factory=SolutionConfig)
    fields: Dict[str, dict] = field(default_factory=dict)
    delta_t: float = 1.0
    start_time: float = 0.0
    end_time: float = 1.0
    mesh: dict = field(default_factory=dict)
    fv_options: dict = field(default_factory=dict)
    transport_properties: dict = field(default_factory=dict)
    model: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data):
        data = dict(data or {})
        time = data.get("time") or {}
        return cls(
            schemes=SchemesConfig.from_dict(data.get("schemes")),
            solution=SolutionConfig.from_dict(data.get("solution")),
            fields=dict(data.get("fields") or {}),
            delta_t=float(time.get("deltaT", 1.0)),
            start_time=float(time.get("startTime", 0.0)),
            end_time=float(time.get("endTime", time.get("startTime", 0.0) + time.get("deltaT", 1.0))),
            mesh=dict(data.get("mesh") or {}),
            fv_options=dict(data.get("fvOptions") or {}),
            transport_properties=dict(data.get("transportProperties") or {}),
            model=dict(data.get("model") or {}),
        )


def load_case_config(filename):
    with open(filename, "r") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Case file '{filename}' does not contain a mapping")
    return CaseConfig.from_dict(data)
