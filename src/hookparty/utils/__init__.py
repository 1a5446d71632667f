"""Shared helpers for hookparty."""
