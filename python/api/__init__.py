"""
FastAPI Backend for CSV Import Previews

Provides REST API endpoints for matching strategies and previewing imports.
"""

from .main import app

__all__ = ["app"]
