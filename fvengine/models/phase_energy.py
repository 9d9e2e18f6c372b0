"""
Paired energy equations exchanging heat through a shared coefficient,

    ddt(rho1, T1) + div(phi1, T1) - laplacian(k1, T1) == Kh (T2 - T1)
    ddt(rho2, T2) + div(phi2, T2) - laplacian(k2, T2) == Kh (T1 - T2)

as in the phase energy equations of a two-phase solver. Both equations are
assembled together every outer corrector so the exchange term enters each
of them with exactly opposite sign.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import List

import numpy as np

from fvengine.assembly import fvm
from fvengine.assembly.coupling import CouplingTerm
from fvengine.assembly.options import FvOptions
from fvengine.solvers.outer_loop import OuterCorrectorLoop

logger = logging.getLogger(__name__)


@dataclass
class PhaseProperties:
    field: object
    diffusivity: object
    flux: object = None
    rho: object = None


@dataclass
class PhaseEnergyResult:
    passes: List[tuple] = field(default_factory=list)
    exchanged: List[np.ndarray] = field(default_factory=list)

    @property
    def diverged(self):
        return any(r.diverged for pair in self.passes for r in pair)

    @property
    def n_passes(self):
        return len(self.passes)


class PhaseEnergy:
    def __init__(self, ctx, phase1, phase2, exchange_coefficient, implicit_coupling=True,
                 fv_options=None):
        self.ctx = ctx
        self.phases = (phase1, phase2)
        for phase in self.phases:
            if isinstance(phase.field, str):
                phase.field = ctx.lookup(phase.field)
        self.coupling = CouplingTerm(
            exchange_coefficient, phase1.field, phase2.field, implicit=implicit_coupling
        )
        self.fv_options = fv_options if fv_options is not None else FvOptions()

    def _assemble(self, phase):
        ctx, T = self.ctx, phase.field
        eqn = fvm.ddt(ctx, T, phase.rho)
        if phase.flux is not None:
            eqn += fvm.div(ctx, phase.flux, T)
        eqn -= fvm.laplacian(ctx, phase.diffusivity, T)
        # transport part only: the exchange and the sources are added after relaxing
        T.store_prev_iter()
        return eqn.relax(ctx.relaxation_factor(T.name))

    def solve(self):
        """Outer correctors of the pair, bounded by the controls of the first field."""
        T1, T2 = (phase.field for phase in self.phases)
        controls = self.ctx.solver_controls(T1.name)
        result = PhaseEnergyResult()

        for corr in range(controls.n_outer_correctors + 1):
            eqn1, eqn2 = (self._assemble(phase) for phase in self.phases)
            result.exchanged.append(self.coupling.apply(eqn1, eqn2))
            self.fv_options.add_sources(eqn1)
            self.fv_options.add_sources(eqn2)

            pair = []
            for psi, eqn in ((T1, eqn1), (T2, eqn2)):
                single = replace(self.ctx.solver_controls(psi.name), n_outer_correctors=0)
                loop = OuterCorrectorLoop(
                    self.ctx, psi, lambda eqn=eqn: eqn, self.fv_options, controls=single,
                    relaxation_factor=1.0, add_sources=False,
                )
                pair.append(loop.run())
            result.passes.append(tuple(pair))

            if result.diverged:
                logger.error("Phase energy pass %d diverged", corr)
                break
            if all(r.residuals and r.residuals[0] <= controls.outer_tolerance for r in pair):
                break
        return result

    def run(self, end_time):
        results = []
        while self.ctx.time.value < end_time - 1.0e-12 * self.ctx.delta_t:
            self.ctx.advance_time()
            result = self.solve()
            results.append(result)
            if result.diverged:
                break
        return results
