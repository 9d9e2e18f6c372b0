from dataclasses import dataclass

from fvengine.errors import ConfigurationError


@dataclass
class TimeState:
    """Current time, time step and the previous time step (for backward differencing)."""

    value: float = 0.0
    delta_t: float = 1.0
    delta_t0: float = 1.0
    time_index: int = 0

    def __post_init__(self):
        if self.delta_t <= 0.0:
            raise ConfigurationError(f"Time step must be positive, got {self.delta_t}")

    def set_delta_t(self, delta_t):
        if delta_t <= 0.0:
            raise ConfigurationError(f"Time step must be positive, got {delta_t}")
        self.delta_t = float(delta_t)

    def advance(self):
        self.delta_t0 = self.delta_t
        self.value += self.delta_t
        self.time_index += 1
        return self.value
