"""
Release Interfaces Layer
========================

FastAPI route handlers for the release board.

This is the outermost layer - handles HTTP requests/responses and
delegates to the board's application services.
"""

from release_board.releases.interfaces.controllers import board_router, get_board

__all__ = ["board_router", "get_board"]
