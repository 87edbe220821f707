"""SQLite persistence: connection, schema, models and repository."""
