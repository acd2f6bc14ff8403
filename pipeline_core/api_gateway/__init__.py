"""
API Gateway Module

FastAPI application exposing lead intake and tenant content introspection.
"""

from .main import app

__all__ = ["app"]
