"""Domain registrar adapters."""

from .resellerclub import ResellerClubRegistrar

__all__ = ["ResellerClubRegistrar"]
