"""API package exports."""

from account_api.api.middleware import CorrelationIdMiddleware
from account_api.api.users import router

__all__ = ["router", "CorrelationIdMiddleware"]
