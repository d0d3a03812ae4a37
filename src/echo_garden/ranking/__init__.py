"""Ranking engine: engagement aggregation, trending, personalization,
spotlight, feed assembly and the engagement write paths that keep the
cached scores current."""
