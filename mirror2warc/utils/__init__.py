"""Filesystem and URL helpers."""
