"""Extraction of structured data embedded in model prose."""

import json

import structlog

from .errors import MalformedOutput

logger = structlog.get_logger(__name__)

EXCERPT_PREVIEW_CHARS = 150


def extract_structured(text: str) -> dict:
    """Extract the JSON object embedded in a model reply.

    Takes the span from the first "{" to the last "}" and parses it strictly.
    Only that outermost span is considered: braces inside strings, or two
    separate objects in one reply, are not handled and fail to parse.

    Args:
        text: Raw model reply, possibly with prose or code fences around the JSON.

    Returns:
        Parsed JSON object.

    Raises:
        MalformedOutput: If no brace span exists or the span is not valid JSON.
    """
    start = text.find("{")
    end = text.rfind("}")

    if start == -1 or end == -1 or end < start:
        logger.warning("structured_output_missing", response_preview=text[:EXCERPT_PREVIEW_CHARS])
        raise MalformedOutput(
            "No valid JSON object found in the model response.",
            excerpt=text[:EXCERPT_PREVIEW_CHARS],
        )

    candidate = text[start:end + 1]
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning(
            "structured_output_parse_failed",
            error=str(e),
            candidate_length=len(candidate),
        )
        raise MalformedOutput(
            f"Failed to parse the extracted JSON object: {e}. "
            f"Raw string: {candidate[:EXCERPT_PREVIEW_CHARS]}",
            excerpt=candidate,
        ) from e
