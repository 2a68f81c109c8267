from study_assistant.auth.dependencies import DB, AdminUser, CurrentUser, require_admin
from study_assistant.auth.passwords import hash_password, verify_password
from study_assistant.auth.tokens import create_access_token, get_current_user

__all__ = [
    "DB", "AdminUser", "CurrentUser", "require_admin",
    "hash_password", "verify_password",
    "create_access_token", "get_current_user",
]
