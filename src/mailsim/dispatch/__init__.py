"""Mail dispatch for MailSim.

Modules:
    mailer: SMTPMailer and TLS/HTML helpers
    models: Dispatch receipts and errors
"""

from src.mailsim.dispatch.mailer import SMTPMailer, render_html, resolve_tls_mode
from src.mailsim.dispatch.models import (
    DispatchError,
    DispatchErrorKind,
    DispatchReceipt,
)

__all__ = [
    "DispatchError",
    "DispatchErrorKind",
    "DispatchReceipt",
    "SMTPMailer",
    "render_html",
    "resolve_tls_mode",
]
