# ems/authentication/rbac.py

from enum import Enum
from functools import wraps
from flask import abort, current_app
from flask_jwt_extended import get_jwt, verify_jwt_in_request

# Role-Based Access Control. Tokens are issued elsewhere; the role travels in
# the JWT "role" claim and the identity is the account id.


class UserRole(Enum):
    VOTER = "voter"
    ADMIN = "admin"
    SUPERVISOR = "supervisor"


class Permission(Enum):
    VOTE = "vote"
    VIEW_OWN_STATUS = "view_own_status"
    VIEW_RESULTS = "view_results"
    VIEW_STATS = "view_stats"
    SET_ELECTION_WINDOW = "set_election_window"
    MANAGE_CANDIDATES = "manage_candidates"
    IMPORT_VOTERS = "import_voters"
    VIEW_AUDIT_LOGS = "view_audit_logs"


_ADMIN_PERMISSIONS = [
    Permission.VIEW_RESULTS,
    Permission.VIEW_STATS,
    Permission.MANAGE_CANDIDATES,
    Permission.IMPORT_VOTERS,
    Permission.VIEW_AUDIT_LOGS,
]

# Role -> Permissions mapping
ROLE_PERMISSIONS = {
    UserRole.VOTER: [
        Permission.VOTE,
        Permission.VIEW_OWN_STATUS,
    ],
    UserRole.ADMIN: _ADMIN_PERMISSIONS,
    UserRole.SUPERVISOR: _ADMIN_PERMISSIONS + [Permission.SET_ELECTION_WINDOW],
}


class RBACService:
    def has_permission(self, user_role, permission):
        try:
            if isinstance(user_role, str):
                user_role = UserRole(user_role.lower().strip())
            if isinstance(permission, str):
                permission = Permission(permission)
        except ValueError:
            return False
        return permission in ROLE_PERMISSIONS.get(user_role, [])


rbac_service = RBACService()


def current_role():
    return str(get_jwt().get('role', '')).lower()


# Decorator for required permission; implies a valid JWT
def require_permission(permission):
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            role = current_role()
            if not rbac_service.has_permission(role, permission):
                current_app.logger.warning("Role %r denied %s", role, permission.value)
                abort(403)
            return func(*args, **kwargs)
        return wrapper
    return decorator
