"""Logging, configuration and metrics helpers."""
