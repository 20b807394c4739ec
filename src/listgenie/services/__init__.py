"""Service facades over the request gateway."""

from listgenie.services.account import AccountService

__all__ = ["AccountService"]
