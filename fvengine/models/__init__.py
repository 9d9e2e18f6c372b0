from .scalar_transport import ScalarTransport
from .phase_energy import PhaseEnergy, PhaseProperties

__all__ = ["ScalarTransport", "PhaseEnergy", "PhaseProperties"]
