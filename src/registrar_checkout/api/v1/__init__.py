"""
API v1 package.

Contains versioned API routes for the registrar checkout API.
"""

from registrar_checkout.api.v1.routes import router

__all__ = ["router"]
