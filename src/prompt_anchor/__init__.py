"""Prompt Anchor - span normalization, anchor relocation and request lifecycle engine."""

import logging
from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("prompt-anchor")
except PackageNotFoundError:
    # Package not installed (development mode without editable install)
    __version__ = "0.1.0"

logging.getLogger("prompt_anchor").addHandler(logging.NullHandler())

__all__ = ["__version__"]
