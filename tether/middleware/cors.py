"""
CORS Middleware for the relay

Attaches CORS headers to every response, answers preflight requests on
any path without touching routing, and turns unexpected exceptions into a
JSON 500 so that even failures carry the headers a browser needs.
"""

import logging
from typing import Callable, Dict, List, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from tether.exceptions.handlers import generic_exception_handler

logger = logging.getLogger('tether.middleware.cors')

ALLOW_METHODS = 'GET, POST, OPTIONS'
ALLOW_HEADERS = 'Content-Type'
MAX_AGE_SECONDS = 86400


def cors_headers(origin: Optional[str], allowed_origins: List[str]) -> Dict[str, str]:
    """
    Compute CORS response headers for a request origin.

    An empty allow-list is open (``*``). Otherwise the origin is reflected
    only when listed, and ``Access-Control-Allow-Origin`` is left out for
    anyone else.
    """
    headers = {
        'Access-Control-Allow-Methods': ALLOW_METHODS,
        'Access-Control-Allow-Headers': ALLOW_HEADERS,
        'Access-Control-Max-Age': str(MAX_AGE_SECONDS),
        'Vary': 'Origin',
    }

    if not allowed_origins:
        headers['Access-Control-Allow-Origin'] = '*'
    elif origin and origin in allowed_origins:
        headers['Access-Control-Allow-Origin'] = origin

    return headers


class RelayCORSMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for CORS negotiation.

    Handles:
    - OPTIONS preflight on any path (204, no body)
    - CORS headers on every response, errors included
    - Last-resort conversion of unexpected exceptions to a 500
    """

    def __init__(self, app, allowed_origins: Optional[List[str]] = None):
        """
        Initialize CORS middleware.

        Args:
            app: FastAPI application
            allowed_origins: Origins to reflect; empty or None allows all
        """
        super().__init__(app)
        self.allowed_origins = list(allowed_origins or [])

        if self.allowed_origins:
            logger.info(f"CORS restricted to {len(self.allowed_origins)} origins")
        else:
            logger.info("CORS open to all origins")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        headers = cors_headers(request.headers.get('origin'), self.allowed_origins)

        if request.method == 'OPTIONS':
            return Response(status_code=204, headers=headers)

        try:
            response = await call_next(request)
        except Exception as e:
            response = await generic_exception_handler(request, e)

        response.headers.update(headers)
        return response
