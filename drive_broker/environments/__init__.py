"""
Environments Module - Google integrations of the Drive broker.

Architecture Overview:
======================
environments/
├── __init__.py           # Module exports
├── base.py               # Exceptions, value types and the TokenProvider contract
└── google/
    ├── auth/             # Token authority (OAuth code flow, refresh, revoke)
    └── drive/            # Request proxy for the Drive v3 REST API

Design Principles:
==================
1. Stateless clients: token material arrives with every call
2. Failures of proxied calls are values (ProxyResult), not exceptions
3. Testability: every client accepts an httpx transport
"""

from drive_broker.environments.base import (
    ArgumentError,
    AuthError,
    EnvironmentError,
    ErrorKind,
    ProxyConfig,
    ProxyError,
    ProxyResult,
    TokenProvider,
    TokenResult,
    TransportError,
    UpstreamError,
    UserInfo,
)

__all__ = [
    # Exceptions
    "EnvironmentError",
    "ArgumentError",
    "AuthError",
    "UpstreamError",
    "TransportError",
    # Value types
    "ErrorKind",
    "TokenResult",
    "UserInfo",
    "ProxyConfig",
    "ProxyError",
    "ProxyResult",
    # Contracts
    "TokenProvider",
]
