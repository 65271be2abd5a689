"""API layer — FastAPI HTTP server."""
