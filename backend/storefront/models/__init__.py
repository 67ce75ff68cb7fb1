"""Pydantic models for API payloads, processor events and notifications."""
