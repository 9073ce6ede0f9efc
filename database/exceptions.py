"""Database exceptions."""

class DatabaseError(Exception):
    """Base exception for database operations."""
    pass

class DatabaseSchemaError(DatabaseError):
    """Raised when schema creation or migration fails."""
    pass

class DuplicateRecordError(DatabaseError):
    """Raised when an insert violates a unique constraint."""
    pass
