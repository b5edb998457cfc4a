"""Outbound notifications: email and GroupMe."""

from .email import (
    EmailError,
    EmailService,
    SMTPEmailProvider,
    ResendEmailProvider,
    new_email_provider,
    get_email_service,
)
from .groupme import GroupMeError, GroupMeService, get_groupme_service

__all__ = [
    "EmailError",
    "EmailService",
    "SMTPEmailProvider",
    "ResendEmailProvider",
    "new_email_provider",
    "get_email_service",
    "GroupMeError",
    "GroupMeService",
    "get_groupme_service",
]
