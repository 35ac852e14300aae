"""CLI command groups.

The CLI is organized into domain groups (``spans``, ``anchors``, ``cache``,
``taxonomy``).
"""

from prompt_anchor.cli.commands.anchors import anchors
from prompt_anchor.cli.commands.cache import cache
from prompt_anchor.cli.commands.spans import spans
from prompt_anchor.cli.commands.taxonomy import taxonomy

__all__ = [
    "anchors",
    "cache",
    "spans",
    "taxonomy",
]
