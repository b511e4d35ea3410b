"""
API v1 package.

Contains versioned API routes for office claiming and official verification.
"""

from src.api.v1.routes import router

__all__ = ["router"]
