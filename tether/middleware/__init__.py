"""
Tether Middleware Components

Middleware for CORS negotiation and last-resort error handling.
"""

from .cors import RelayCORSMiddleware

__all__ = ['RelayCORSMiddleware']
