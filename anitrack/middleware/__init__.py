"""Middleware package for the application."""

from anitrack.middleware.request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware"]
