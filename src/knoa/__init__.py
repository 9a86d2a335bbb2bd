"""
knoa - workflow tracking for AI-assisted development.

Tracks tasks, sessions, feedback loops and their git commits across
long-running coding sessions. The event-and-error core lives in the
separate knoa_core package; this package adds configuration, file
storage, validators, reference managers and the CLI.
"""

__version__ = "0.1.0"
__version_tuple__ = (0, 1, 0)

from knoa.bootstrap import Application, build_application
from knoa.config import KnoaConfig, get_config

__all__ = [
    "__version__",
    "__version_tuple__",
    "Application",
    "build_application",
    "KnoaConfig",
    "get_config",
]
