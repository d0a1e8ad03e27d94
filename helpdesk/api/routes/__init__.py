"""API route modules."""

from . import ping, reports, tickets

__all__ = ["ping", "reports", "tickets"]
