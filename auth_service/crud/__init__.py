"""
CRUD operations (Create, Read, Update, Delete) for database models.

This layer provides a clean separation between the auth flow and database
operations, following the Repository pattern.
"""

from auth_service.crud import refresh_token, user, verification_code

__all__ = ["refresh_token", "user", "verification_code"]
