"""Pydantic schemas for gateway requests and responses."""
