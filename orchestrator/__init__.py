"""
Module 09 - Agent Orchestration

Runs submission cycles as a sequence of composable steps.

Public API:
- OracleAgent: submit_once, run_continuous, health_check
- HealthReport: Read-only health snapshot
- LoopStats: Counters of a continuous run
- CycleStep / CycleState: Cycle state machine and artifacts
- SOPExecutor: Step executor that fails closed
"""

from orchestrator.agent import HealthReport, LoopStats, OracleAgent
from orchestrator.sop_executor import (
    CycleState,
    CycleStep,
    FunctionStep,
    SOPExecutor,
    SOPStep,
    make_step,
    new_cycle_id,
)


__all__ = [
    "OracleAgent",
    "HealthReport",
    "LoopStats",
    "CycleState",
    "CycleStep",
    "FunctionStep",
    "SOPExecutor",
    "SOPStep",
    "make_step",
    "new_cycle_id",
]
