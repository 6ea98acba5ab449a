"""Conversion pipeline: parsers, correlation, redirect synthesis and writers."""
