"""Prompt text and small helpers."""
