"""prompt-anchor CLI module entry point.

Enables running the CLI via: python -m prompt_anchor.cli
"""

from prompt_anchor.cli.main import cli

if __name__ == "__main__":
    cli()
