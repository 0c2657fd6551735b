"""
Shared utilities for certauth.

- notifications: outbound email (password reset links)
"""

from certauth.utils.notifications import send_email, send_password_reset_email

__all__ = [
    "send_email",
    "send_password_reset_email",
]
