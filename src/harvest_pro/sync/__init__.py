"""Offline queue, sync processor, dead letters and conflict handling."""
