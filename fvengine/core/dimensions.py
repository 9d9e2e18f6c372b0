"""
Physical dimension tags.

A DimensionSet stores the exponents of the seven SI base units
[mass, length, time, temperature, moles, current, luminous intensity].
Every field and every assembled equation carries one; equations can only be
combined when their dimension sets are equal.
"""

from dataclasses import dataclass

import numpy as np

from fvengine.errors import ConfigurationError

_NAMES = ("kg", "m", "s", "K", "mol", "A", "cd")
_TOL = 1.0e-10


class DimensionSet:
    __slots__ = ("exponents",)

    def __init__(self, mass=0, length=0, time=0, temperature=0, moles=0,
                 current=0, luminous=0):
        self.exponents = (float(mass), float(length), float(time),
                          float(temperature), float(moles), float(current),
                          float(luminous))

    @classmethod
    def from_sequence(cls, exps):
        exps = list(exps)
        if len(exps) not in (5, 7):
            raise ConfigurationError(
                f"Dimension set needs 5 or 7 exponents, got {len(exps)}: {exps}"
            )
        return cls(*exps)

    def __mul__(self, other):
        return DimensionSet(*(a + b for a, b in zip(self.exponents, other.exponents)))

    def __truediv__(self, other):
        return DimensionSet(*(a - b for a, b in zip(self.exponents, other.exponents)))

    def __pow__(self, power):
        return DimensionSet(*(a * power for a in self.exponents))

    def __eq__(self, other):
        if not isinstance(other, DimensionSet):
            return NotImplemented
        return all(abs(a - b) < _TOL for a, b in zip(self.exponents, other.exponents))

    def __hash__(self):
        return hash(tuple(round(e, 8) for e in self.exponents))

    def dimensionless(self):
        return all(abs(e) < _TOL for e in self.exponents)

    def __repr__(self):
        exps = " ".join(f"{e:g}" for e in self.exponents)
        return f"[{exps}]"

    def __str__(self):
        parts = [
            name if e == 1 else f"{name}^{e:g}"
            for name, e in zip(_NAMES, self.exponents)
            if abs(e) > _TOL
        ]
        return "[" + (" ".join(parts) if parts else "-") + "]"


dimless = DimensionSet()
dimMass = DimensionSet(mass=1)
dimLength = DimensionSet(length=1)
dimTime = DimensionSet(time=1)
dimTemperature = DimensionSet(temperature=1)
dimArea = dimLength ** 2
dimVolume = dimLength ** 3
dimVelocity = dimLength / dimTime
dimDensity = dimMass / dimVolume
dimVolumetricFlux = dimVolume / dimTime
dimMassFlux = dimMass / dimTime
dimKinematicViscosity = dimArea / dimTime
dimEnergy = dimMass * dimArea / dimTime ** 2
dimSpecificHeatCapacity = dimEnergy / dimMass / dimTemperature


@dataclass
class DimensionedScalar:
    """A uniform coefficient with a name and a dimension tag."""

    name: str
    dimensions: DimensionSet
    value: float

    def __post_init__(self):
        self.value = float(self.value)

    def __mul__(self, other):
        if isinstance(other, DimensionedScalar):
            return DimensionedScalar(
                f"{self.name}*{other.name}", self.dimensions * other.dimensions,
                self.value * other.value,
            )
        return DimensionedScalar(self.name, self.dimensions, self.value * float(other))

    __rmul__ = __mul__


def dimensions_of(obj):
    """Dimension tag of a field, dimensioned scalar or plain number."""
    if obj is None:
        return dimless
    dims = getattr(obj, "dimensions", None)
    if dims is not None:
        return dims
    if np.isscalar(obj):
        return dimless
    raise ConfigurationError(f"Cannot determine dimensions of {type(obj).__name__}")
