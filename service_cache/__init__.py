"""Render cache store service."""
