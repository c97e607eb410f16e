"""Top-level package for actiontap."""

__version__ = "0.1.0"

from . import config, extractor, session, sources  # noqa: E402

__all__ = ["config", "extractor", "session", "sources"]
