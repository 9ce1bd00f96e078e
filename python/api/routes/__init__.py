"""
API Routes Package

Contains all route modules for the CSV import API.
"""

from .csv_import import router as csv_import_router

__all__ = [
    "csv_import_router",
]
