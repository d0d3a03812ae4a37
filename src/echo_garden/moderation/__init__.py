"""Moderation queue workflow."""
