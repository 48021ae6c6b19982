"""HTTP API — JSON routes and the FastAPI application."""
