"""
Pipeline runs - ordered execution of generation steps.

architecture -> content -> layout -> [export] -> [deployment]
"""
from pipeline.run import PipelineRun, RunLogEntry, RunOptions, RunStatus
from pipeline.runner import PipelineRunner, ProgressEvent, run_pipeline, validate_sequence
from pipeline.manager import RunManager, resolve_steps

__all__ = [
    "PipelineRun",
    "RunLogEntry",
    "RunOptions",
    "RunStatus",
    "PipelineRunner",
    "ProgressEvent",
    "run_pipeline",
    "validate_sequence",
    "RunManager",
    "resolve_steps",
]
