"""Stage definitions: what each forward transition sends and keeps.

Stage flow:
1. INPUT              -> architecture description (text, optional image)
2. REVIEW_DESCRIPTION -> data-flow description    (text, optional image)
3. REVIEW_DFD         -> threat enumeration        (structured)
"""

import json
from dataclasses import dataclass
from typing import Any, Callable

import structlog
from pydantic import ValidationError

from threat_modeler.config.prompts import (
    ARCHITECTURE_DESCRIPTION_PROMPT,
    ARCHITECTURE_DESCRIPTION_USER_PROMPT,
    DFD_GENERATOR_PROMPT,
    DFD_GENERATOR_USER_PROMPT,
    THREAT_MODELER_PROMPT,
    THREAT_MODELER_USER_PROMPT,
)
from threat_modeler.llm import InvocationRequest, MalformedOutput
from threat_modeler.models import ThreatModelResult

from .state import PipelineStage, PipelineState

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StageDefinition:
    """One forward transition of the pipeline."""

    name: str
    target: PipelineStage
    build_request: Callable[[PipelineState], InvocationRequest]
    apply_output: Callable[[Any], dict]


def _render(system_prompt: str, user_template: str, **values: str) -> str:
    return f"{system_prompt}\n\n{user_template.format(**values)}"


def _architecture_request(state: PipelineState) -> InvocationRequest:
    inputs = state.inputs
    prompt = _render(
        ARCHITECTURE_DESCRIPTION_PROMPT,
        ARCHITECTURE_DESCRIPTION_USER_PROMPT,
        description=inputs.description,
        app_type=inputs.app_type.value,
        data_classification=inputs.data_classification.value,
    )
    return InvocationRequest(prompt=prompt, image=inputs.image)


def _dfd_request(state: PipelineState) -> InvocationRequest:
    prompt = _render(
        DFD_GENERATOR_PROMPT,
        DFD_GENERATOR_USER_PROMPT,
        ai_description=state.ai_description,
    )
    return InvocationRequest(prompt=prompt, image=state.inputs.image)


def _threats_request(state: PipelineState) -> InvocationRequest:
    inputs = state.inputs
    prompt = _render(
        THREAT_MODELER_PROMPT,
        THREAT_MODELER_USER_PROMPT,
        dfd_description=state.dfd_description,
        app_type=inputs.app_type.value,
        data_classification=inputs.data_classification.value,
    )
    return InvocationRequest(prompt=prompt, expect_structured=True)


def _keep_description(output: Any) -> dict:
    return {"ai_description": str(output)}


def _keep_dfd(output: Any) -> dict:
    return {"dfd_description": str(output)}


def _keep_threats(output: Any) -> dict:
    """Validate the structured reply into threats.

    Raises:
        MalformedOutput: If the reply does not match the threat schema.
    """
    try:
        result = ThreatModelResult.from_model_output(output)
    except ValidationError as e:
        excerpt = json.dumps(output, default=str)[:500]
        logger.warning("threat_schema_validation_failed", errors=e.error_count())
        raise MalformedOutput(
            f"Model output does not match the threat schema: {e.error_count()} error(s)",
            excerpt=excerpt,
        ) from e

    return {"threats": tuple(result.threats)}


STAGES: dict[PipelineStage, StageDefinition] = {
    PipelineStage.INPUT: StageDefinition(
        name="architecture_description",
        target=PipelineStage.REVIEW_DESCRIPTION,
        build_request=_architecture_request,
        apply_output=_keep_description,
    ),
    PipelineStage.REVIEW_DESCRIPTION: StageDefinition(
        name="dfd_generation",
        target=PipelineStage.REVIEW_DFD,
        build_request=_dfd_request,
        apply_output=_keep_dfd,
    ),
    PipelineStage.REVIEW_DFD: StageDefinition(
        name="threat_enumeration",
        target=PipelineStage.RESULTS,
        build_request=_threats_request,
        apply_output=_keep_threats,
    ),
}

# Review stage -> the state field its reviewer may edit
EDITABLE_OUTPUTS: dict[PipelineStage, str] = {
    PipelineStage.REVIEW_DESCRIPTION: "ai_description",
    PipelineStage.REVIEW_DFD: "dfd_description",
}
