"""Database layer: models, sessions and the SQL repository."""
