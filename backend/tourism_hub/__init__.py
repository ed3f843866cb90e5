"""
Tourism Hub Backend Application Package

This package contains the FastAPI backend for the tourism coordination
platform, including:

- main.py: FastAPI application factory, middleware and router wiring
- services/application_service.py: grant application status machine
- services/notification_service.py: notification dispatch and visibility
- state.py: change-feed driven read cache for public collections
"""

__version__ = "1.0.0"
