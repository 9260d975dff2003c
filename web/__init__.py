"""FastAPI web application for tinyhci.

This module provides the HTTP ingress: GitHub webhooks, CI build
notifications and a read-only view of the build index.

All business logic is delegated to core modules in tinyhci/.
"""

from web.app import create_app

__all__ = ["create_app"]
