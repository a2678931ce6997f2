"""
API Endpoints Module

Contains FastAPI route handlers.
"""

from .sessions import router as sessions_router

__all__ = ['sessions_router']
