"""Pydantic and dataclass models for shipit."""
