"""
Presence Interfaces Layer
=========================

FastAPI routes for the presence module.
"""

from src.presence.interfaces.controllers import presence_router

__all__ = ["presence_router"]
