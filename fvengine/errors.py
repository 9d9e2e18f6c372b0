"""
Exception taxonomy of the assembly engine.

- ConfigurationError: unknown scheme/entry, dimension mismatch, duplicate
  registration. Always fatal.
- ConvergenceFailure: the linear solver failed beyond the hard threshold.
  Carries the solver performance so the caller can decide what to do.
- TopologyMismatch: an array does not fit the mesh it is bound to.
"""


class FvEngineError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(FvEngineError):
    """Raised for invalid configuration detected at construction/assembly."""


class TopologyMismatch(FvEngineError):
    """Raised when field or coefficient sizes disagree with the mesh."""


class ConvergenceFailure(FvEngineError):
    """Raised when a linear solve diverges; the field is left untouched."""

    def __init__(self, message, performance=None):
        super().__init__(message)
        self.performance = performance


def unknown_entry_message(category, name, valid_names):
    """Format the 'unknown <category> type' message with sorted alternatives."""
    valid = sorted(valid_names)
    listing = "\n".join(f"    {n}" for n in valid)
    return (
        f"Unknown {category} type '{name}'\n\n"
        f"Valid {category} types are ({len(valid)}):\n{listing}"
    )
