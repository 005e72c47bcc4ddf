"""
User Roles

Role names carried in session tokens. Kept in core so the authentication
and tenancy layers do not depend on the users module.
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles in the system."""

    PLATFORM_ADMIN = "platform_admin"
    SCHOOL_ADMIN = "school_admin"
    HEAD_TEACHER = "head_teacher"
    TEACHER = "teacher"
    RECEPTIONIST = "receptionist"
    FINANCE_OFFICER = "finance_officer"
    PARENT = "parent"


# The only role exempt from tenant binding
PLATFORM_OPERATOR_ROLES = frozenset({UserRole.PLATFORM_ADMIN})

# Roles allowed to run administrative sequence operations (reset / repair)
SEQUENCE_ADMIN_ROLES = frozenset({UserRole.PLATFORM_ADMIN, UserRole.SCHOOL_ADMIN})

# Roles allowed to admit learners
ADMISSION_ROLES = frozenset(
    {
        UserRole.PLATFORM_ADMIN,
        UserRole.SCHOOL_ADMIN,
        UserRole.HEAD_TEACHER,
        UserRole.RECEPTIONIST,
    }
)
