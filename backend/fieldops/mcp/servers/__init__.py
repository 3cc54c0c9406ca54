"""Bundled tool endpoints, one per external system."""

from .accounting import AccountingEndpoint
from .mail import EmailEndpoint
from .messaging import MessagingEndpoint
from .scheduling import SchedulingEndpoint

__all__ = ["AccountingEndpoint", "EmailEndpoint", "MessagingEndpoint", "SchedulingEndpoint"]
