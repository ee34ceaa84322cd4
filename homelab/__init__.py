"""
Home-server automation dashboard backend.

Cron-triggered automation engine with a FastAPI control surface and a
live websocket event stream.
"""

__version__ = "1.0.0"
