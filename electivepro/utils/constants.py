"""Shared enumerations for roles and workflow states.

Kept as plain string constants (stored verbatim in the database) plus tuples
for validation, so modules and tests can import a single source of truth.
"""
from __future__ import annotations

ROLE_STUDENT = "student"
ROLE_PROGRAM_MANAGER = "program_manager"
ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super_admin"
ROLES = (ROLE_STUDENT, ROLE_PROGRAM_MANAGER, ROLE_ADMIN, ROLE_SUPER_ADMIN)

# Roles that live on an institution subdomain vs. the main domain.
TENANT_ROLES = (ROLE_STUDENT, ROLE_PROGRAM_MANAGER)
MAIN_DOMAIN_ROLES = (ROLE_ADMIN, ROLE_SUPER_ADMIN)

# Roles allowed to review selections and build packs.
REVIEWER_ROLES = (ROLE_PROGRAM_MANAGER, ROLE_ADMIN)

SELECTION_PENDING = "pending"
SELECTION_APPROVED = "approved"
SELECTION_REJECTED = "rejected"
SELECTION_STATUSES = (SELECTION_PENDING, SELECTION_APPROVED, SELECTION_REJECTED)

PACK_DRAFT = "draft"
PACK_PUBLISHED = "published"
PACK_CLOSED = "closed"
PACK_ARCHIVED = "archived"
PACK_STATUSES = (PACK_DRAFT, PACK_PUBLISHED, PACK_CLOSED, PACK_ARCHIVED)
# Packs a student may see in listings.
STUDENT_VISIBLE_PACK_STATUSES = (PACK_PUBLISHED, PACK_CLOSED)

SEMESTER_FALL = "fall"
SEMESTER_SPRING = "spring"
SEMESTERS = (SEMESTER_FALL, SEMESTER_SPRING)

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
RECORD_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE)

DASHBOARD_PATHS = {
    ROLE_STUDENT: "/student/dashboard",
    ROLE_PROGRAM_MANAGER: "/manager/dashboard",
    ROLE_ADMIN: "/admin/dashboard",
    ROLE_SUPER_ADMIN: "/super-admin/dashboard",
}

LOGIN_PATHS = {
    ROLE_STUDENT: "/student/login",
    ROLE_PROGRAM_MANAGER: "/manager/login",
    ROLE_ADMIN: "/admin/login",
    ROLE_SUPER_ADMIN: "/super-admin/login",
}

__all__ = [
    "ROLE_STUDENT",
    "ROLE_PROGRAM_MANAGER",
    "ROLE_ADMIN",
    "ROLE_SUPER_ADMIN",
    "ROLES",
    "TENANT_ROLES",
    "MAIN_DOMAIN_ROLES",
    "REVIEWER_ROLES",
    "SELECTION_PENDING",
    "SELECTION_APPROVED",
    "SELECTION_REJECTED",
    "SELECTION_STATUSES",
    "PACK_DRAFT",
    "PACK_PUBLISHED",
    "PACK_CLOSED",
    "PACK_ARCHIVED",
    "PACK_STATUSES",
    "STUDENT_VISIBLE_PACK_STATUSES",
    "SEMESTER_FALL",
    "SEMESTER_SPRING",
    "SEMESTERS",
    "STATUS_ACTIVE",
    "STATUS_INACTIVE",
    "RECORD_STATUSES",
    "DASHBOARD_PATHS",
    "LOGIN_PATHS",
]
