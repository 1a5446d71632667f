"""Delivering user replies back into running sessions."""
