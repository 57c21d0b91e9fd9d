"""Shared API plumbing: middleware, exception handlers and request security."""
