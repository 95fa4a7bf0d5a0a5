"""FastAPI surface of the storage service."""

from permastore.api.app import ERROR_STATUS, create_app, status_for

__all__ = ["ERROR_STATUS", "create_app", "status_for"]
