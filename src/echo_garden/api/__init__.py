"""FastAPI application, dependencies and routes."""
