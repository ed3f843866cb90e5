"""Shared helpers for admin sub-routers."""

from tourism_hub.helpers.db_utils import row_to_dict
from tourism_hub.models.db.user import User

# Never leaves the server
_USER_SKIP_COLS = {"hashed_password"}


def _user_dict(user: User) -> dict:
    """User ORM instance -> JSON-safe dict without credentials."""
    return row_to_dict(user, skip_cols=_USER_SKIP_COLS)
