"""Pydantic request/response schemas, kept apart from the ORM models."""
