"""Notification fan-out and inbound reply handling."""
