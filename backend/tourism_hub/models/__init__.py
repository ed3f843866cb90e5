"""
Tourism Hub API Models

Pydantic request/response schemas live in this package; SQLAlchemy ORM
models live in :mod:`tourism_hub.models.db`.
"""
