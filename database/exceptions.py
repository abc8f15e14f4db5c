"""Exception types raised by the database package"""


class DatabaseError(Exception):
    """Base exception for database setup errors"""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when schema files are invalid or a migration fails"""
    pass


class DatabaseNotInitializedError(DatabaseError):
    """Raised when the pool is requested before init_db() succeeded"""
    pass
