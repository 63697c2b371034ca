"""Pydantic schemas and enumerations for the receipt pipeline."""
