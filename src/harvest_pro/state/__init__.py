"""Application state store with Qt change signals."""
