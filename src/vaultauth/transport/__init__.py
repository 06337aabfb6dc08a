"""
VaultAuth Transport Module

Collaborators that move and interpret login requests.

Components:
- http_transport: HTTPS transport for login requests
- response_parser: XML reply interpretation
"""

from vaultauth.transport.http_transport import HTTPTransport, Transport
from vaultauth.transport.response_parser import ResponseParser, XMLResponseParser

__all__ = [
    "HTTPTransport",
    "Transport",
    "ResponseParser",
    "XMLResponseParser",
]
