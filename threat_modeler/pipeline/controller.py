"""Pipeline controller - sequences the three analysis stages.

The controller owns a PipelineState value and replaces it wholesale on every
operation. Forward transitions run one model invocation each and only
advance when it succeeds; a failed invocation leaves the state exactly as it
was, plus the error. At most one invocation is in flight: while busy, every
other action is rejected as a no-op.
"""

import asyncio
from datetime import datetime, timezone

import structlog

from threat_modeler.llm import (
    CapacityExceeded,
    InvocationClient,
    InvocationError,
    MalformedOutput,
)
from threat_modeler.models import AnalysisInputs, AnalysisRecord, ThreatStatus
from threat_modeler.storage import RecordStore, StorageError

from .stages import EDITABLE_OUTPUTS, STAGES
from .state import (
    PipelineStage,
    PipelineState,
    StageError,
    StageErrorKind,
    create_initial_state,
)

logger = structlog.get_logger(__name__)


class PipelineError(Exception):
    """Error during pipeline control."""

    pass


class TransitionRejected(PipelineError):
    """The requested operation is not allowed in the current stage."""

    pass


def stage_error_from(error: Exception, stage: PipelineStage) -> StageError:
    """Convert an invocation failure into a user-visible stage error."""
    if isinstance(error, CapacityExceeded):
        return StageError(
            kind=StageErrorKind.CAPACITY,
            stage=stage,
            message=f"The model is busy and did not respond after {error.attempts} attempts. Please try again.",
        )
    if isinstance(error, MalformedOutput):
        return StageError(
            kind=StageErrorKind.MALFORMED,
            stage=stage,
            message=str(error),
            excerpt=error.excerpt or None,
        )
    return StageError(kind=StageErrorKind.TRANSPORT, stage=stage, message=str(error))


class PipelineController:
    """Drives one analysis through INPUT -> REVIEW_DESCRIPTION -> REVIEW_DFD -> RESULTS."""

    def __init__(self, client: InvocationClient, state: PipelineState | None = None):
        self.client = client
        self._state = state or create_initial_state()
        self._inflight: asyncio.Future | None = None
        self._cancel_requested = False

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state.busy

    def _rejected_while_busy(self, action: str) -> bool:
        if self._state.busy:
            logger.warning("action_rejected_busy", action=action, stage=self._state.stage.name)
            return True
        return False

    # =========================================================================
    # Navigation
    # =========================================================================

    async def advance(self) -> PipelineState:
        """Run the current stage's invocation and move forward on success.

        Returns:
            The new state. On failure the stage and outputs are unchanged and
            state.error describes what happened.
        """
        if self._rejected_while_busy("advance"):
            return self._state

        state = self._state
        if state.stage == PipelineStage.RESULTS:
            logger.warning("advance_rejected", stage=state.stage.name, reason="terminal_stage")
            return state

        # A new action replaces any held error
        before = state.model_copy(update={"error": None})

        if state.stage == PipelineStage.INPUT:
            problems = state.inputs.missing_fields()
            if problems:
                logger.info("advance_rejected_validation", problems=problems)
                self._state = before.model_copy(update={
                    "error": StageError(
                        kind=StageErrorKind.VALIDATION,
                        stage=state.stage,
                        message="Cannot start the analysis: " + "; ".join(problems) + ".",
                    ),
                })
                return self._state

        step = STAGES[state.stage]
        request = step.build_request(state)

        logger.info(
            "stage_advance_start",
            stage=step.name,
            has_image=request.image is not None,
            expect_structured=request.expect_structured,
        )

        self._state = before.model_copy(update={"busy": True})
        self._cancel_requested = False
        self._inflight = asyncio.ensure_future(self.client.invoke(request))

        try:
            output = await self._inflight
            update = step.apply_output(output)

        except asyncio.CancelledError:
            if not self._cancel_requested:
                self._state = before
                raise
            logger.info("stage_advance_cancelled", stage=step.name)
            self._state = before.model_copy(update={
                "error": StageError(
                    kind=StageErrorKind.CANCELLED,
                    stage=state.stage,
                    message="The analysis step was cancelled.",
                ),
            })
            return self._state

        except InvocationError as e:
            logger.warning("stage_advance_failed", stage=step.name, error_class=type(e).__name__, error=str(e))
            self._state = before.model_copy(update={"error": stage_error_from(e, state.stage)})
            return self._state

        except Exception as e:
            logger.exception("stage_advance_error", stage=step.name)
            self._state = before.model_copy(update={"error": stage_error_from(e, state.stage)})
            return self._state

        finally:
            self._inflight = None
            self._cancel_requested = False

        self._state = before.model_copy(update={**update, "stage": step.target})

        logger.info("stage_advance_complete", stage=step.name, now_at=step.target.name)
        return self._state

    def retreat(self) -> PipelineState:
        """Move back one review stage, keeping every output produced so far."""
        if self._rejected_while_busy("retreat"):
            return self._state

        state = self._state
        if not state.can_retreat:
            logger.info("retreat_ignored", stage=state.stage.name)
            return state

        self._state = state.model_copy(update={
            "stage": PipelineStage(state.stage - 1),
            "error": None,
        })
        logger.info("stage_retreat", from_stage=state.stage.name, to_stage=self._state.stage.name)
        return self._state

    def cancel(self) -> bool:
        """Cancel the in-flight invocation, if any.

        Returns:
            True if an invocation was cancelled.
        """
        if self._inflight is None or self._inflight.done():
            return False
        self._cancel_requested = True
        self._inflight.cancel()
        return True

    def reset(self) -> PipelineState:
        """Start over with a fresh analysis."""
        if self._rejected_while_busy("reset"):
            return self._state
        self._state = create_initial_state()
        return self._state

    # =========================================================================
    # Editing
    # =========================================================================

    def update_inputs(self, **changes) -> PipelineState:
        """Change user inputs; only allowed before the first stage runs.

        Raises:
            TransitionRejected: If not positioned at INPUT.
            pydantic.ValidationError: If a value does not fit its field.
        """
        if self._rejected_while_busy("update_inputs"):
            return self._state

        state = self._state
        if state.stage != PipelineStage.INPUT:
            raise TransitionRejected(f"Inputs can only be changed at {PipelineStage.INPUT.label}")

        inputs = AnalysisInputs.model_validate({**dict(state.inputs), **changes})
        self._state = state.model_copy(update={"inputs": inputs, "error": None})
        return self._state

    def edit_stage_output(self, stage: PipelineStage, text: str) -> PipelineState:
        """Replace a stage's output while reviewing it.

        Raises:
            TransitionRejected: If not currently positioned at that review stage.
        """
        if self._rejected_while_busy("edit_stage_output"):
            return self._state

        state = self._state
        stage = PipelineStage(stage)
        if stage not in EDITABLE_OUTPUTS or state.stage != stage:
            raise TransitionRejected(
                f"{stage.label} output can only be edited while reviewing it (currently at {state.stage.label})"
            )

        self._state = state.model_copy(update={EDITABLE_OUTPUTS[stage]: text, "error": None})
        logger.debug("stage_output_edited", stage=stage.name, length=len(text))
        return self._state

    def set_threat_status(self, threat_id: str, status: ThreatStatus) -> PipelineState:
        """Accept or reject a pending threat before the analysis is saved.

        Raises:
            TransitionRejected: If not at RESULTS, already saved, or the id is unknown.
            InvalidThreatTransition: If the threat is no longer pending.
        """
        if self._rejected_while_busy("set_threat_status"):
            return self._state

        state = self._state
        if state.stage != PipelineStage.RESULTS:
            raise TransitionRejected("Threat status can only be changed on results")
        if state.saved:
            raise TransitionRejected("Saved analyses cannot be modified")

        threats = list(state.threats)
        for index, threat in enumerate(threats):
            if threat.threat_id == threat_id:
                threats[index] = threat.with_status(status)
                break
        else:
            raise TransitionRejected(f"Unknown threat: {threat_id}")

        self._state = state.model_copy(update={"threats": tuple(threats), "error": None})
        logger.info("threat_status_changed", threat_id=threat_id, status=ThreatStatus(status).value)
        return self._state

    def dismiss_error(self) -> PipelineState:
        """Clear the held error."""
        if self._rejected_while_busy("dismiss_error"):
            return self._state
        self._state = self._state.model_copy(update={"error": None})
        return self._state

    # =========================================================================
    # Persistence
    # =========================================================================

    def build_record(self, record_id: str | None = None, created_at: datetime | None = None) -> AnalysisRecord:
        """Assemble the analysis record from the terminal state.

        Args:
            record_id: Id to use; defaults to the saved or loaded id, if any.
            created_at: Creation time; defaults to the stored time, else now.

        Raises:
            TransitionRejected: If the pipeline has not reached RESULTS.
        """
        state = self._state
        if state.stage != PipelineStage.RESULTS:
            raise TransitionRejected("A record can only be built from results")

        inputs = state.inputs
        return AnalysisRecord(
            id=record_id or state.record_id or "",
            title=inputs.title,
            app_type=inputs.app_type,
            data_classification=inputs.data_classification,
            description=inputs.description,
            image_ref=state.image_ref,
            image_url=state.image_url,
            ai_description=state.ai_description,
            dfd_description=state.dfd_description,
            threats=list(state.threats),
            created_at=created_at or state.created_at or datetime.now(timezone.utc),
        )

    async def save(self, store: RecordStore) -> PipelineState:
        """Persist the analysis once; afterwards it is read-only.

        Raises:
            TransitionRejected: If not at RESULTS or already saved.
        """
        if self._rejected_while_busy("save"):
            return self._state

        state = self._state
        if state.stage != PipelineStage.RESULTS:
            raise TransitionRejected("Only completed analyses can be saved")
        if state.saved:
            raise TransitionRejected("This analysis has already been saved")

        record = self.build_record()
        image = state.inputs.image

        self._state = state.model_copy(update={"busy": True, "error": None})
        try:
            record_id = await store.create(
                record,
                image=image.data if image else None,
                image_filename=image.filename if image else None,
            )
        except StorageError as e:
            logger.warning("save_failed", error=str(e))
            self._state = state.model_copy(update={
                "error": StageError(kind=StageErrorKind.STORAGE, stage=state.stage, message=str(e)),
            })
            return self._state
        except BaseException:
            self._state = state
            raise

        self._state = state.model_copy(update={
            "record_id": record_id,
            "created_at": record.created_at,
            "saved": True,
            "error": None,
        })
        logger.info("analysis_saved", record_id=record_id)
        return self._state

    def load(self, record: AnalysisRecord) -> PipelineState:
        """Show a stored record as a read-only RESULTS state."""
        if self._rejected_while_busy("load"):
            return self._state

        inputs = AnalysisInputs(
            title=record.title,
            description=record.description,
            app_type=record.app_type,
            data_classification=record.data_classification,
        )

        self._state = PipelineState(
            stage=PipelineStage.RESULTS,
            inputs=inputs,
            ai_description=record.ai_description,
            dfd_description=record.dfd_description,
            threats=tuple(record.threats),
            record_id=record.id,
            created_at=record.created_at,
            image_ref=record.image_ref,
            image_url=record.image_url,
            saved=True,
        )
        logger.info("analysis_loaded", record_id=record.id)
        return self._state
