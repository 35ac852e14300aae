"""JSON output helpers for the prompt-anchor CLI.

This module provides the sole output mechanism for the CLI. It wraps the
response helpers from prompt_anchor.core.responses so every command emits
the same response-v2 envelope.
"""

import json
import sys
from dataclasses import asdict
from typing import Any, Mapping, NoReturn, Optional, Sequence

from prompt_anchor.cli.logging import generate_request_id, get_request_id
from prompt_anchor.core.responses import (
    ErrorCode,
    ErrorType,
    error_response,
    success_response,
)


def _request_id() -> str:
    return get_request_id() or generate_request_id()


def emit(data: Any) -> None:
    """Emit JSON to stdout.

    Data is serialized in minified format for smaller payloads.
    """
    print(json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str))


def emit_error(
    message: str,
    code: str = ErrorCode.INTERNAL_ERROR.value,
    *,
    error_type: str = ErrorType.INTERNAL.value,
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
) -> NoReturn:
    """Emit an error envelope to stderr and exit with code 1.

    Args:
        message: Human-readable error description.
        code: Error code in SCREAMING_SNAKE_CASE (e.g., VALIDATION_ERROR).
        error_type: Error category (validation, not_found, internal, etc.).
        remediation: Actionable guidance for resolving the error.
        details: Optional additional error context.

    Raises:
        SystemExit: Always exits with code 1.
    """
    response = error_response(
        message,
        error_code=code,
        error_type=error_type,
        remediation=remediation,
        details=details,
        request_id=_request_id(),
    )
    print(
        json.dumps(asdict(response), separators=(",", ":"), ensure_ascii=False, default=str),
        file=sys.stderr,
    )
    sys.exit(1)


def emit_success(
    data: Any,
    *,
    warnings: Optional[Sequence[str]] = None,
    telemetry: Optional[Mapping[str, Any]] = None,
    meta: Optional[Mapping[str, Any]] = None,
) -> None:
    """Emit a success envelope to stdout.

    Non-dict data is wrapped under a ``result`` key.
    """
    if not isinstance(data, dict):
        data = {"result": data}
    response = success_response(
        data=data,
        warnings=warnings,
        telemetry=telemetry,
        meta=meta,
        request_id=_request_id(),
    )
    emit(asdict(response))
