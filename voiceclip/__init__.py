"""Top-level package for voiceclip."""

__version__ = "0.1.0"

from . import config, history, storage, transcriber, workflow  # noqa: E402

__all__ = ["config", "history", "storage", "transcriber", "workflow", "__version__"]
