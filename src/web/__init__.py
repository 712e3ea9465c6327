"""HTTP layer: application factory, routers and the response envelope."""

from .app import create_app
from .responses import error_response, success_response

__all__ = ["create_app", "error_response", "success_response"]
