"""
formsift utilities module.
"""

from formsift.utils.config import Settings, get_project_root, get_settings
from formsift.utils.logging import LogContext, configure_logging, get_logger

__all__ = [
    "Settings",
    "get_settings",
    "get_project_root",
    "get_logger",
    "configure_logging",
    "LogContext",
]
