from emgurus.adapters.email.dev import DevEmailAdapter, SentEmail
from emgurus.adapters.email.resend import RESEND_API_URL, ResendEmailAdapter

__all__ = ["DevEmailAdapter", "SentEmail", "ResendEmailAdapter", "RESEND_API_URL"]
