"""prompt-anchor CLI.

Every command emits a JSON envelope (``success``, ``data``, ``error``,
``meta``) so results can be piped into other tools.
"""

from prompt_anchor.cli.config import CLIContext, create_context
from prompt_anchor.cli.logging import cli_command, get_request_id
from prompt_anchor.cli.main import cli
from prompt_anchor.cli.output import emit, emit_error, emit_success
from prompt_anchor.cli.registry import get_context, set_context

__all__ = [
    # Entry point
    "cli",
    # Context
    "CLIContext",
    "create_context",
    "get_context",
    "set_context",
    # Output
    "emit",
    "emit_error",
    "emit_success",
    # Logging
    "cli_command",
    "get_request_id",
]
