"""Authenticated HTTP access to the ListGenie backend.

Public API
----------
.. autoclass:: RequestGateway
.. autoclass:: UploadTransport
"""

from listgenie.gateway.client import RequestGateway, server_message
from listgenie.gateway.upload import UploadTransport

__all__ = [
    "RequestGateway",
    "UploadTransport",
    "server_message",
]
