"""Execution of case code: resumable contexts, failure attribution, async cases."""

from casebox.runner.async_env import AsyncCaseRun, AsyncEnvFactory
from casebox.runner.context import ContextStatus, ExecutionContext, ExecutionOutcome
from casebox.runner.inspector import (
    FrameInfo,
    StackInspector,
    definition_site,
    normalize_reason,
    recover_line,
)
from casebox.runner.safe_run import SuspendedRunner

__all__ = [
    "AsyncCaseRun",
    "AsyncEnvFactory",
    "ContextStatus",
    "ExecutionContext",
    "ExecutionOutcome",
    "FrameInfo",
    "StackInspector",
    "SuspendedRunner",
    "definition_site",
    "normalize_reason",
    "recover_line",
]
