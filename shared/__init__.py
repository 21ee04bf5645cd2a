"""Shared helpers: component logging and logging configuration."""
