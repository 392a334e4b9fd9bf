"""
Web Routes Package.

This package contains FastAPI route modules:
- library: song catalog REST endpoints (/library/*)
"""

from songbook.web.routes.library import register_library_routes

__all__ = [
    "register_library_routes",
]
