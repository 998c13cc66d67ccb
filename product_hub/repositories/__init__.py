"""Async repositories returning catalog records."""
