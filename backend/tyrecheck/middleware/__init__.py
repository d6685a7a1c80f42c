"""Middleware package for FastAPI application"""
from tyrecheck.middleware.logging_middleware import RequestLoggingMiddleware

__all__ = ['RequestLoggingMiddleware']
