"""Pydantic models for settings and persisted guild documents."""
