"""
ASGI entry point for the refinement proxy, e.g. ``uvicorn api.index:app``.
"""
import os
import sys

# Repository root holds the top-level modules (settings, logger, ...)
root_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if root_dir not in sys.path:
    sys.path.insert(0, root_dir)

from api.main import create_app  # noqa: E402

app = create_app()

__all__ = ["app"]
