"""ListGenie client gateway: authenticated uploads and job tracking."""

__version__ = "0.1.0"

from listgenie.exceptions import GatewayError
from listgenie.models import GatewayConfig, TokenPair
from listgenie.session import GatewaySession

__all__ = ["GatewayConfig", "GatewayError", "GatewaySession", "TokenPair", "__version__"]
