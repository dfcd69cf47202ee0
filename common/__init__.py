"""
Shared plumbing for the flyer rewards service: settings, logging,
bearer-token auth context and HTTP error handlers.
"""

from .settings import Settings, settings
from .auth import AuthContext, get_auth_context, get_staff_context, mint_access_token
from .logging_config import configure_logging

__all__ = [
    "Settings",
    "settings",
    "AuthContext",
    "get_auth_context",
    "get_staff_context",
    "mint_access_token",
    "configure_logging",
]
