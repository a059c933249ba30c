"""
Interaction Admission Routes

STAGE-0: Admission

``POST /`` is the synchronous, fast half of a question:

1. Signature verified (dependency, 401 on failure)
2. PING answered with PONG
3. Command payload validated; invalid payloads get an ephemeral error
   message and no run is created
4. A ``WorkflowRun`` is scheduled as a background task and the deferred
   acknowledgment is returned before any workflow step executes
"""

import asyncio
import secrets
import string
import time
import uuid

from fastapi import APIRouter
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError as PydanticValidationError

from sheetqa.api.dependencies import BackgroundTasksDep, KVDep, MetricsDep, SettingsDep, VerifiedBodyDep
from sheetqa.api.models.interactions import Interaction, InteractionResponse
from sheetqa.core.config.constants import InteractionType, Stage
from sheetqa.core.exceptions import InvalidInteractionError
from sheetqa.core.logging import get_logger, log_stage
from sheetqa.core.models import WorkflowRun
from sheetqa.workflows.answer_question import run_answer_question

router = APIRouter(tags=["Interactions"])

logger = get_logger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(n: int) -> str:
    digits = []
    while True:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
        if n == 0:
            return "".join(reversed(digits))


def generate_request_id() -> str:
    """``req_<base36 epoch ms>_<7 random base36 chars>``"""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"req_{_to_base36(int(time.time() * 1000))}_{suffix}"


def parse_interaction(body: bytes) -> Interaction:
    """
    Parse and validate the raw interaction body.

    Raises:
        InvalidInteractionError: Malformed JSON or missing fields
    """
    try:
        return Interaction.model_validate_json(body)
    except PydanticValidationError as e:
        raise InvalidInteractionError("Invalid Discord interaction: malformed payload") from e


def validate_command(interaction: Interaction) -> tuple[str, str]:
    """
    Extract ``(question, token)`` from a command interaction.

    Raises:
        InvalidInteractionError: Missing data, options, token or question text
    """
    if interaction.data is None:
        raise InvalidInteractionError("Invalid Discord interaction: missing data")
    if not interaction.data.options:
        raise InvalidInteractionError("Invalid Discord interaction: missing options")
    question = interaction.question()
    if question is None:
        raise InvalidInteractionError("Invalid Discord interaction: question must be a non-empty string")
    if not interaction.token:
        raise InvalidInteractionError("Invalid Discord interaction: missing token")
    return question, interaction.token


def _log_run_result(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.warning("Workflow run cancelled")
        return
    error = task.exception()
    if error is not None:
        logger.error("Fatal error in background workflow run", error=str(error), error_type=type(error).__name__)


@router.get("/", response_class=PlainTextResponse)
async def liveness() -> str:
    return "Hello from the sheet QA bot!"


@router.post("/")
async def interactions(
    body: VerifiedBodyDep,
    kv: KVDep,
    metrics: MetricsDep,
    settings: SettingsDep,
    background_tasks: BackgroundTasksDep,
) -> JSONResponse:
    """Handle one inbound interaction."""
    try:
        interaction = parse_interaction(body)

        if interaction.type == InteractionType.PING:
            return JSONResponse(InteractionResponse.pong().to_payload())

        if interaction.type != InteractionType.APPLICATION_COMMAND:
            raise InvalidInteractionError("Invalid interaction type")

        question, token = validate_command(interaction)

    except InvalidInteractionError as e:
        log_stage(logger, Stage.ADMISSION, "Rejected interaction", level="warning", reason=e.message)
        return JSONResponse(InteractionResponse.ephemeral(e.message).to_payload())

    run = WorkflowRun(
        request_id=generate_request_id(),
        token=token,
        message=question,
        instance_id=uuid.uuid4().hex,
    )
    task = asyncio.create_task(run_answer_question(run, kv, settings=settings, metrics=metrics))
    background_tasks.add(task)
    task.add_done_callback(background_tasks.discard)
    task.add_done_callback(_log_run_result)

    log_stage(
        logger,
        Stage.ADMISSION,
        "Workflow run scheduled",
        request_id=run.request_id,
        instance_id=run.instance_id,
        question_length=len(question),
    )
    return JSONResponse(InteractionResponse.deferred().to_payload())
