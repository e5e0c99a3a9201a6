"""ORM models aggregate exports."""
from .base import Base  # noqa: F401
from .tenancy import Institution, SubscriptionPlan  # noqa: F401
from .users import AuthToken, ManagerProfile, Profile, StudentProfile  # noqa: F401
from .academics import (  # noqa: F401
    AcademicYear,
    Course,
    Degree,
    Group,
    Program,
    University,
)
from .electives import (  # noqa: F401
    CourseSelection,
    ElectivePack,
    ExchangeProgram,
    ExchangeSelection,
)

__all__ = [
    "Base",
    "SubscriptionPlan",
    "Institution",
    "Profile",
    "StudentProfile",
    "ManagerProfile",
    "AuthToken",
    "Degree",
    "Program",
    "Group",
    "AcademicYear",
    "Course",
    "University",
    "ElectivePack",
    "ExchangeProgram",
    "CourseSelection",
    "ExchangeSelection",
]
