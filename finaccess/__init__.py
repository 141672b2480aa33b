"""Client library for authenticated access to the Pix infrastructure API."""
from __future__ import annotations

import logging
from typing import Any, Optional

from .config import RetryPolicy, Settings, settings
from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all
from .core.rest import AccessClient, default_client, set_default_client
from .core.user import User
from .resources import event, pix_request, pix_request_log

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())


def init(user: User, settings: Optional[Settings] = None, **client_options: Any) -> AccessClient:
    """
    Process-wide initialization.

    Builds the default ``AccessClient`` for ``user`` that resource wrappers
    fall back to when no ``client=`` is passed. Call once at startup; calling
    again replaces the default (the previous client is not closed).
    """
    client = AccessClient(user, settings, **client_options)
    set_default_client(client)
    return client


__all__ = [
    *_core_all,
    "RetryPolicy",
    "Settings",
    "default_client",
    "event",
    "init",
    "pix_request",
    "pix_request_log",
    "settings",
]
