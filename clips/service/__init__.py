"""
Service layer for media extraction and ephemeral file serving.

These functions are independent of the HTTP layer and are used by:
- The JSON views (clips/views.py)
- The management commands (clips/management/commands/)
"""
