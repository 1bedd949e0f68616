"""Todo Auth API Router - aggregates all auth service routes."""

from fastapi import APIRouter

from todoauth.api import auth, health

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(auth.router)
