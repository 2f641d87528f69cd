"""
API module for endpoint routes.

Exports:
    commands_router: Catalog search and maintenance endpoints (mounted at /api/v1)
"""

from cmdsearch.api.v1.commands import router as commands_router

__all__ = [
    "commands_router",
]
