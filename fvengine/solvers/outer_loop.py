"""
Outer corrector loop of one transported field.

Each pass walks the states

    ASSEMBLE -> CONSTRAIN -> SOLVE -> BOUNDARY_UPDATE -> (CONVERGED | ASSEMBLE)

and SOLVE -> DIVERGED when the linear solver fails beyond the divergence
threshold. The loop runs at most ``nOuterCorrectors + 1`` passes and stops
early once the initial residual of a pass is within ``outerTolerance``.
A divergence is reported in the result, not raised; the field is left at
its values from before the failed pass.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import numpy as np

from fvengine.errors import ConvergenceFailure

logger = logging.getLogger(__name__)


class LoopState(Enum):
    ASSEMBLE = "assemble"
    CONSTRAIN = "constrain"
    SOLVE = "solve"
    BOUNDARY_UPDATE = "boundaryUpdate"
    CONVERGED = "converged"
    DIVERGED = "diverged"


@dataclass
class OuterLoopResult:
    field_name: str
    states: List[LoopState] = field(default_factory=list)
    performances: list = field(default_factory=list)
    failure: Optional[ConvergenceFailure] = None
    tolerance_met: bool = False

    @property
    def final_state(self):
        return self.states[-1] if self.states else None

    @property
    def converged(self):
        return self.final_state is LoopState.CONVERGED

    @property
    def diverged(self):
        return self.final_state is LoopState.DIVERGED

    @property
    def n_passes(self):
        return self.states.count(LoopState.ASSEMBLE)

    @property
    def residuals(self):
        """Initial residual of every completed pass."""
        return [perf.initial_residual for perf in self.performances]

    @property
    def final_residuals(self):
        return [perf.final_residual for perf in self.performances]


class OuterCorrectorLoop:
    """
    Parameters
    ----------
    ctx : SimulationContext
        Supplies the solver controls and relaxation factor of the field.
    psi : VolField
        The unknown; solved in place.
    assemble : callable
        ``assemble()`` returns a fresh EquationMatrix for ``psi``; it is
        called once per pass so explicit terms see the updated field.
    fv_options : FvOptions, optional
        Sources added before relaxation, constraints before the solve and
        corrections after the boundary update.
    add_sources : bool
        False when ``assemble`` already returns the equation with the fvOptions
        sources in it.
    """

    def __init__(self, ctx, psi, assemble, fv_options=None, controls=None,
                 relaxation_factor=None, add_sources=True):
        self.ctx = ctx
        self.psi = psi
        self.assemble = assemble
        self.fv_options = fv_options
        self.add_sources = add_sources
        self.controls = controls if controls is not None else ctx.solver_controls(psi.name)
        self.relaxation_factor = (
            relaxation_factor if relaxation_factor is not None
            else ctx.relaxation_factor(psi.name)
        )

    def _enter(self, result, state):
        logger.debug("%s: %s", self.psi.name, state.value)
        result.states.append(state)

    def _restore(self):
        last = self.psi.prev_iter()
        self.psi.values[...] = last.values
        for patch, values in last.boundary_field.items():
            self.psi.boundary_field[patch] = values.copy()

    def run(self):
        psi = self.psi
        controls = self.controls
        result = OuterLoopResult(field_name=psi.name)
        n_passes = controls.n_outer_correctors + 1

        for corr in range(n_passes):
            self._enter(result, LoopState.ASSEMBLE)
            psi.store_prev_iter()
            eqn = self.assemble()
            if self.fv_options is not None and self.add_sources:
                self.fv_options.add_sources(eqn)
            eqn.relax(self.relaxation_factor)

            self._enter(result, LoopState.CONSTRAIN)
            if self.fv_options is not None:
                self.fv_options.constrain(eqn)

            self._enter(result, LoopState.SOLVE)
            try:
                performance = eqn.solve(controls, update_boundaries=False)
            except ConvergenceFailure as e:
                self._restore()
                if e.performance is not None:
                    result.performances.append(e.performance)
                result.failure = e
                self._enter(result, LoopState.DIVERGED)
                logger.error("Outer corrector %d of %s diverged: %s", corr, psi.name, e)
                return result
            result.performances.append(performance)

            self._enter(result, LoopState.BOUNDARY_UPDATE)
            psi.correct_boundary_conditions()
            if self.fv_options is not None:
                self.fv_options.correct(psi)

            if performance.initial_residual <= controls.outer_tolerance:
                result.tolerance_met = True
                break

        self._enter(result, LoopState.CONVERGED)
        logger.info(
            "%s: %d outer corrector(s), initial residuals %s",
            psi.name, result.n_passes, np.array2string(np.asarray(result.residuals), precision=3),
        )
        return result
