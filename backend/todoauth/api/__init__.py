# Todo Auth API
from todoauth.api.router import api_router

__all__ = ["api_router"]
