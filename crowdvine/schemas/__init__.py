"""Pydantic request and response schemas for the CrowdVine API."""
