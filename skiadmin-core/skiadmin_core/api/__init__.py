"""
Auth API
========
FastAPI router and service wiring for the setup and OTP endpoints.
"""

from .services import AuthServices
from .routes import create_auth_router, get_client_ip
from .app import create_app

__all__ = [
    "AuthServices",
    "create_auth_router",
    "get_client_ip",
    "create_app",
]
