"""
Module 09A - SOP Executor

Purpose: Keep the cycle's steps composable and testable with minimal abstraction.

Provides:
- CycleStep: The states one submission cycle moves through
- CycleState: Dataclass holding cycle artifacts incrementally
- SOPStep / FunctionStep: A named unit of work over CycleState
- SOPExecutor: Runner that executes steps in sequence and fails closed
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

from core.schemas.errors import ErrorCodes, OracleException
from core.schemas.oracle import (
    AggregationResult,
    ArchiveEntry,
    PendingTransaction,
    ProofBundle,
    SubmissionReceipt,
    SubmissionRecord,
)

logger = logging.getLogger(__name__)


class CycleStep(str, Enum):
    IDLE = "IDLE"
    AGGREGATING = "AGGREGATING"
    PROVING = "PROVING"
    LOCALLY_VERIFYING = "LOCALLY_VERIFYING"
    PRE_ARCHIVING = "PRE_ARCHIVING"
    SUBMITTING = "SUBMITTING"
    CONFIRMING = "CONFIRMING"
    POST_ARCHIVING = "POST_ARCHIVING"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self in (CycleStep.DONE, CycleStep.FAILED)


def new_cycle_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class CycleState:
    """
    Holds artifacts incrementally as a cycle progresses.

    Each step may read from and write to this state.
    """

    cycle_id: str = field(default_factory=new_cycle_id)
    override_price: Optional[float] = None
    started_at: float = field(default_factory=time.monotonic)

    step: CycleStep = CycleStep.IDLE
    history: list[tuple[CycleStep, datetime]] = field(default_factory=list)

    aggregation: Optional[AggregationResult] = None
    bundle: Optional[ProofBundle] = None
    pre_entry: Optional[ArchiveEntry] = None
    pending: Optional[PendingTransaction] = None
    receipt: Optional[SubmissionReceipt] = None
    post_entry: Optional[ArchiveEntry] = None
    record: Optional[SubmissionRecord] = None

    error: Optional[OracleException] = None
    failed_step: Optional[CycleStep] = None

    def advance(self, step: CycleStep) -> None:
        if self.step.terminal:
            raise RuntimeError(f"cycle {self.cycle_id} already ended in {self.step.value}")
        self.step = step
        self.history.append((step, datetime.now(timezone.utc)))
        logger.debug(f"cycle {self.cycle_id} -> {step.value}", extra={"cycle_id": self.cycle_id})

    def fail(self, error: OracleException) -> None:
        self.failed_step = self.step
        self.error = error
        self.step = CycleStep.FAILED
        self.history.append((CycleStep.FAILED, datetime.now(timezone.utc)))

    @property
    def ok(self) -> bool:
        return self.step != CycleStep.FAILED

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    @property
    def steps_taken(self) -> list[CycleStep]:
        return [s for s, _ in self.history]


class SOPStep(Protocol):
    """
    Protocol for a single cycle step.

    Each step enters one CycleStep and transforms state.
    """

    @property
    def name(self) -> str:
        ...

    @property
    def enters(self) -> CycleStep:
        ...

    def run(self, state: CycleState) -> CycleState:
        ...


@dataclass
class FunctionStep:
    """
    Adapter to create SOPStep from a plain function.

    Example:
        step = FunctionStep("aggregate", CycleStep.AGGREGATING, lambda s: do_something(s))
    """

    _name: str
    _enters: CycleStep
    _func: Callable[[CycleState], CycleState]

    @property
    def name(self) -> str:
        return self._name

    @property
    def enters(self) -> CycleStep:
        return self._enters

    def run(self, state: CycleState) -> CycleState:
        return self._func(state)


class SOPExecutor:
    """
    Executor that runs a sequence of SOPSteps.

    The first failing step ends the cycle: the state is marked FAILED and
    the categorized OracleException propagates. Exceptions that are not
    OracleException are wrapped so callers have a single type to catch.
    """

    def __init__(self) -> None:
        self._step_results: list[tuple[str, bool, Optional[str]]] = []

    def execute(self, steps: list[SOPStep], state: CycleState) -> CycleState:
        self._step_results = []

        for step in steps:
            state.advance(step.enters)
            try:
                state = step.run(state)
            except OracleException as e:
                self._record_failure(step, state, e)
                raise
            except Exception as e:
                wrapped = OracleException(
                    f"Step '{step.name}' failed unexpectedly: {e}",
                    code=ErrorCodes.INTERNAL_ERROR,
                    details={"step": step.name, "type": type(e).__name__},
                )
                self._record_failure(step, state, wrapped)
                raise wrapped from e
            self._step_results.append((step.name, True, None))

        state.advance(CycleStep.DONE)
        return state

    def _record_failure(self, step: SOPStep, state: CycleState, error: OracleException) -> None:
        self._step_results.append((step.name, False, error.message))
        state.fail(error)

    @property
    def step_results(self) -> list[tuple[str, bool, Optional[str]]]:
        """
        Get results of each step execution.

        Returns:
            List of (step_name, success, error_message) tuples
        """
        return self._step_results.copy()

    def get_failed_steps(self) -> list[str]:
        return [name for name, success, _ in self._step_results if not success]

    def all_steps_succeeded(self) -> bool:
        return all(success for _, success, _ in self._step_results)


def make_step(
    name: str,
    enters: CycleStep,
    func: Callable[[CycleState], CycleState],
) -> SOPStep:
    """Convenience function to create a step from a function."""
    return FunctionStep(name, enters, func)
