"""
Step identifiers and the per-run context bag.
"""
from enum import Enum
from typing import Any, Iterator, Mapping, Optional, Union


class StepId(str, Enum):
    """Pipeline steps, declared in canonical execution order."""
    ARCHITECTURE = "architecture"
    CONTENT = "content"
    LAYOUT = "layout"
    EXPORT = "export"
    DEPLOYMENT = "deployment"

    @classmethod
    def canonical_order(cls) -> list["StepId"]:
        return list(cls)

    @property
    def position(self) -> int:
        return self.canonical_order().index(self)


class PipelineContext:
    """
    Caller input plus the accumulated outputs of completed steps.

    Outputs are append-only: a step's output can be recorded exactly once
    and is never replaced. Owned by a single pipeline run.
    """

    def __init__(
        self,
        input_data: Optional[Mapping[str, Any]] = None,
        outputs: Optional[Mapping[Union[StepId, str], Any]] = None,
    ):
        self.input_data: dict = dict(input_data or {})
        self._outputs: dict[StepId, Any] = {}
        for step, data in (outputs or {}).items():
            self.record(StepId(step), data)

    def has(self, step: StepId) -> bool:
        return step in self._outputs

    def get(self, step: StepId, default: Any = None) -> Any:
        return self._outputs.get(step, default)

    def record(self, step: StepId, data: Any) -> None:
        if step in self._outputs:
            raise ValueError(f"Output for step '{step.value}' already recorded")
        self._outputs[step] = data

    @property
    def outputs(self) -> Mapping[StepId, Any]:
        return dict(self._outputs)

    def __iter__(self) -> Iterator[StepId]:
        return iter(self._outputs)

    def __len__(self) -> int:
        return len(self._outputs)

    def to_dict(self) -> dict:
        return {step.value: data for step, data in self._outputs.items()}
