"""Bulk student import: validation pipeline, staging models, import service."""
