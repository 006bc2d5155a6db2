"""Role permission helper sets."""

from callwatch.db.enums.auth import Role

# Roles that see every schedule without grants
ROLES_SEE_ALL_SCHEDULES = {Role.ADMIN}

# Roles that can grant, revoke and restore schedule permissions
ROLES_CAN_MANAGE_SCHEDULE_PERMISSIONS = {Role.ADMIN}

# Roles that can change any call's status, not just their own
ROLES_CAN_MANAGE_ANY_CALL = {Role.ADMIN}

# Roles that can create calls on someone else's schedule
ROLES_CAN_SCHEDULE_FOR_OTHERS = {Role.ADMIN}
