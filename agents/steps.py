"""
Step registry: each generation step described as data.

A StepDefinition binds a prompt builder to the output contract for that
step (required fields, defaults to backfill, expected types) and the
inputs and earlier outputs it depends on. One executor runs every step.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Union

from agents.context import PipelineContext, StepId
from agents.errors import MissingDependencyError, UnknownStepError
from agents.prompts import (
    PromptPair,
    architecture_prompt,
    content_prompt,
    deployment_prompt,
    export_prompt,
    layout_prompt,
)

EXPORT_FORMATS = ("html", "nextjs", "elementor", "zip")
DEPLOY_PLATFORMS = ("coolify", "vercel", "netlify", "github-pages", "aws")


@dataclass(frozen=True)
class StepDefinition:
    """Immutable description of one pipeline step."""
    step_id: StepId
    display_name: str
    prompt_builder: Callable[[PipelineContext], PromptPair]
    required_fields: tuple[str, ...] = ()
    default_backfill: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    field_types: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    depends_on: tuple[StepId, ...] = ()
    required_inputs: tuple[str, ...] = ()
    allowed_inputs: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    temperature: float = 0.7
    max_tokens: int = 4000


STEP_DEFINITIONS: Mapping[StepId, StepDefinition] = MappingProxyType({
    StepId.ARCHITECTURE: StepDefinition(
        step_id=StepId.ARCHITECTURE,
        display_name="Website Architect",
        prompt_builder=architecture_prompt,
        required_fields=(
            "sitemap",
            "navigation.primary",
            "userFlow",
            "recommendations",
            "seo.metaDescription",
        ),
        default_backfill=MappingProxyType({
            "navigation.primary": [],
            "userFlow": {"entryPoints": [], "conversionPoints": [], "keyPages": []},
            "recommendations": {"essentialPages": [], "optionalPages": [], "features": []},
            "seo.metaDescription": "",
        }),
        field_types=MappingProxyType({"sitemap": "array", "navigation.primary": "array"}),
        required_inputs=("brief",),
        temperature=0.3,
        max_tokens=3000,
    ),
    StepId.CONTENT: StepDefinition(
        step_id=StepId.CONTENT,
        display_name="Content Writer",
        prompt_builder=content_prompt,
        required_fields=("pageContent", "seo", "brandVoice"),
        default_backfill=MappingProxyType({
            "brandVoice": {"tone": "professional", "personality": "", "guidelines": []},
        }),
        field_types=MappingProxyType({"pageContent": "object", "seo": "object"}),
        depends_on=(StepId.ARCHITECTURE,),
        temperature=0.7,
        max_tokens=4000,
    ),
    StepId.LAYOUT: StepDefinition(
        step_id=StepId.LAYOUT,
        display_name="Layout Designer",
        prompt_builder=layout_prompt,
        required_fields=("layoutSystem", "pageLayouts", "components", "accessibility"),
        default_backfill=MappingProxyType({
            "components": {},
            "accessibility": {
                "focusIndicators": True,
                "skipLinks": True,
                "colorContrast": "WCAG AA",
            },
        }),
        field_types=MappingProxyType({"layoutSystem": "object", "pageLayouts": "object"}),
        depends_on=(StepId.ARCHITECTURE, StepId.CONTENT),
        temperature=0.2,
        max_tokens=4000,
    ),
    StepId.EXPORT: StepDefinition(
        step_id=StepId.EXPORT,
        display_name="Export Compiler",
        prompt_builder=export_prompt,
        required_fields=("exportFormat", "files", "structure", "assets"),
        default_backfill=MappingProxyType({
            "assets": {"images": [], "fonts": [], "icons": []},
        }),
        field_types=MappingProxyType({
            "exportFormat": "string",
            "files": "object",
            "structure": "object",
        }),
        depends_on=(StepId.ARCHITECTURE, StepId.CONTENT, StepId.LAYOUT),
        required_inputs=("export_format",),
        allowed_inputs=MappingProxyType({"export_format": EXPORT_FORMATS}),
        temperature=0.1,
        max_tokens=4000,
    ),
    StepId.DEPLOYMENT: StepDefinition(
        step_id=StepId.DEPLOYMENT,
        display_name="Deployment Agent",
        prompt_builder=deployment_prompt,
        required_fields=("deployment", "configuration", "pipeline"),
        default_backfill=MappingProxyType({
            "pipeline": {"steps": [], "rollback": {"enabled": True}},
        }),
        field_types=MappingProxyType({"deployment": "object", "configuration": "object"}),
        depends_on=(StepId.EXPORT,),
        required_inputs=("deploy_platform",),
        allowed_inputs=MappingProxyType({"deploy_platform": DEPLOY_PLATFORMS}),
        temperature=0.1,
        max_tokens=3000,
    ),
})


def resolve_step_id(step_id: Union[StepId, str]) -> StepId:
    if isinstance(step_id, StepId):
        return step_id
    try:
        return StepId(step_id)
    except ValueError:
        raise UnknownStepError(str(step_id)) from None


def get_step_definition(step_id: Union[StepId, str]) -> StepDefinition:
    """Look up a step definition, raising UnknownStepError if absent."""
    step = resolve_step_id(step_id)
    definition = STEP_DEFINITIONS.get(step)
    if definition is None:
        raise UnknownStepError(step.value)
    return definition


def check_inputs(definition: StepDefinition, input_data: Mapping[str, Any]) -> None:
    """Raise MissingDependencyError if the brief lacks a required input."""
    step = definition.step_id.value
    for key in definition.required_inputs:
        value = input_data.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MissingDependencyError(step, key, "missing from input")
    for key, allowed in definition.allowed_inputs.items():
        value = input_data.get(key)
        if value is not None and value not in allowed:
            raise MissingDependencyError(
                step, key, f"'{value}' is not one of {', '.join(allowed)}"
            )


def build_prompt(step_id: Union[StepId, str], context: PipelineContext) -> PromptPair:
    """
    Build the (system, user) prompt pair for a step.

    Pure and deterministic; performs no I/O.

    Raises:
        UnknownStepError: step_id is not registered
        MissingDependencyError: a declared dependency is absent from context
    """
    definition = get_step_definition(step_id)
    for dependency in definition.depends_on:
        if not context.has(dependency):
            raise MissingDependencyError(
                definition.step_id.value, dependency.value, "output missing from context"
            )
    check_inputs(definition, context.input_data)
    return definition.prompt_builder(context)
