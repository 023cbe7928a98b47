"""Medistock receiving workflow service."""
