"""File input helpers shared by CLI commands.

Failures are reported through :func:`emit_error`, so callers can treat the
return values as valid.
"""

import json
from pathlib import Path
from typing import Any

from prompt_anchor.cli.output import emit_error
from prompt_anchor.core.responses import ErrorCode, ErrorType


def read_text_file(path: str) -> str:
    """Read a UTF-8 text file exactly as stored (no newline translation)."""
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except UnicodeDecodeError as e:
        emit_error(
            f"{path} is not valid UTF-8: {e}",
            code=ErrorCode.INVALID_FORMAT.value,
            error_type=ErrorType.VALIDATION.value,
            remediation="Re-encode the file as UTF-8",
        )
    except OSError as e:
        emit_error(
            f"Could not read {path}: {e}",
            code=ErrorCode.NOT_FOUND.value,
            error_type=ErrorType.NOT_FOUND.value,
        )


def load_json_file(path: str) -> Any:
    """Parse a JSON file, emitting INVALID_FORMAT when it does not parse."""
    raw = read_text_file(path)
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        emit_error(
            f"{Path(path).name} is not valid JSON: {e.msg} (line {e.lineno})",
            code=ErrorCode.INVALID_FORMAT.value,
            error_type=ErrorType.VALIDATION.value,
            details={"path": path, "line": e.lineno, "column": e.colno},
        )
