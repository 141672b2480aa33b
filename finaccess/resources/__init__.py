"""Resource wrappers built on the generic access engine."""

from . import event, pix_request, pix_request_log

__all__ = ["event", "pix_request", "pix_request_log"]
