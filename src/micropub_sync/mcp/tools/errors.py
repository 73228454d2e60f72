"""Error response builders for MCP tool handlers.

Every ``ErrorKind`` maps to a corrective action so an agent can recover
without human intervention: fix the input, wait out a rate limit, refresh
and retry, or ask the operator to fix the configuration.
"""

from __future__ import annotations

import mcp.types as types

from ...errors import ErrorKind, MicropubSyncError, RateLimitError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (an ``ErrorKind`` value, ``unknown_tool``
            or ``server_error``)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("ValidationError", "Title is required", "Add a title.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# ---------------------------------------------------------------------------
# Corrective actions per error kind
# ---------------------------------------------------------------------------

_ACTIONS: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "Fix the entity or parameters, then retry.",
    ErrorKind.AUTH: (
        "The token was rejected. Ask the operator to check MICROPUB_TOKEN "
        "and its scopes."
    ),
    ErrorKind.RATE_LIMIT: "Wait before retrying; do not retry in a loop.",
    ErrorKind.SERVICE: (
        "The service failed or was unreachable. Retry later, or run "
        "content_refresh to check connectivity."
    ),
    ErrorKind.SCHEMA: (
        "The service answered in an unexpected format. Check that "
        "MICROPUB_URL points at a Micropub endpoint."
    ),
    ErrorKind.CONFLICT: (
        "Another operation on this entity is in progress or the target "
        "exists. Run content_refresh, then retry."
    ),
    ErrorKind.CONFIGURATION: (
        "Ask the operator to configure the missing endpoint "
        "(e.g. MICROPUB_MEDIA_ENDPOINT)."
    ),
    ErrorKind.PARSE: (
        "Fix the front-matter block of the file, then run content_refresh."
    ),
}


def corrective_action(kind: ErrorKind, retry_after: int | None = None) -> str:
    """Corrective action for *kind*, naming the wait for rate limits."""
    if kind == ErrorKind.RATE_LIMIT and retry_after is not None:
        return f"Wait {retry_after} seconds, then retry once."
    return _ACTIONS.get(kind, "Retry later.")


def translate_error(error: MicropubSyncError) -> types.CallToolResult:
    """Translate a raised ``MicropubSyncError`` to a structured error."""
    retry_after = (
        error.retry_after if isinstance(error, RateLimitError) else None
    )
    return build_error_response(
        error.kind.value,
        error.message,
        corrective_action(error.kind, retry_after),
    )


def result_error(result) -> types.CallToolResult:
    """Structured error for a failed pipeline result.

    Args:
        result: ``PublishResult`` or ``UploadResult`` with ``ok`` false.

    Returns:
        CallToolResult with isError=True; ``structuredContent`` carries the
        result's ``to_dict()`` shape.
    """
    kind = result.kind or ErrorKind.SERVICE
    response = build_error_response(
        kind.value,
        result.message or "operation failed",
        corrective_action(kind, result.retry_after),
    )
    return types.CallToolResult(
        content=response.content,
        structuredContent=result.to_dict(),
        isError=True,
    )
