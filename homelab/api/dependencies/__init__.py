"""
API Dependencies package.

Cross-cutting concerns: authentication and service access.
"""

from .auth import verify_api_key, is_websocket_key_valid
from .services import get_service, get_ws_service

__all__ = ["verify_api_key", "is_websocket_key_valid", "get_service", "get_ws_service"]
