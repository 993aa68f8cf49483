"""Guided three-stage analysis pipeline.

Usage:
    from threat_modeler.llm import create_invocation_client
    from threat_modeler.pipeline import PipelineController

    controller = PipelineController(create_invocation_client())
    controller.update_inputs(title="Payments API", description="...")
    state = await controller.advance()
"""

from .controller import PipelineController, PipelineError, TransitionRejected, stage_error_from
from .stages import EDITABLE_OUTPUTS, STAGES, StageDefinition
from .state import (
    PipelineStage,
    PipelineState,
    StageError,
    StageErrorKind,
    create_initial_state,
)

__all__ = [
    "PipelineController",
    "PipelineError",
    "TransitionRejected",
    "stage_error_from",
    "EDITABLE_OUTPUTS",
    "STAGES",
    "StageDefinition",
    "PipelineStage",
    "PipelineState",
    "StageError",
    "StageErrorKind",
    "create_initial_state",
]
