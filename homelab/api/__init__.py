"""
HTTP and WebSocket surface for the automation engine.

Import the application from homelab.api.main (create_app / app).
"""
