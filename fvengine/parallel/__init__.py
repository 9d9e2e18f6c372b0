"""In-process domain decomposition used to check decomposition invariance."""

from .decomposition import DomainDecomposition, Partition, decompose
from .processor import exchange_gradient_halos, gather, local_contexts, solve_decomposed

__all__ = [
    "DomainDecomposition",
    "Partition",
    "decompose",
    "exchange_gradient_halos",
    "gather",
    "local_contexts",
    "solve_decomposed",
]
