"""Per-role dashboard counters."""
from __future__ import annotations

from typing import Dict

from electivepro.db.repositories import institutions_repo, offerings_repo, plans_repo, profiles_repo
from electivepro.db.repositories.offerings_repo import KIND_COURSE, KIND_EXCHANGE
from electivepro.services import offerings_service
from electivepro.utils import constants


def student_summary(institution_id: int, student_id: int) -> Dict[str, int]:
    packs = offerings_service.student_offerings(KIND_COURSE, institution_id, student_id)
    programs = offerings_service.student_offerings(KIND_EXCHANGE, institution_id, student_id)
    counts = {
        "open_packs": sum(1 for p in packs if p["is_open"]),
        "open_programs": sum(1 for p in programs if p["is_open"]),
        "pending": 0,
        "approved": 0,
        "rejected": 0,
    }
    for kind in (KIND_COURSE, KIND_EXCHANGE):
        for selection in offerings_repo.list_student_selections(kind, student_id):
            if selection.status in counts:
                counts[selection.status] += 1
    return counts


def institution_summary(institution_id: int) -> Dict[str, int]:
    """Counters shown to program managers and institution admins."""
    return {
        "packs": offerings_repo.count_offerings(KIND_COURSE, institution_id),
        "published_packs": offerings_repo.count_offerings(
            KIND_COURSE, institution_id, statuses=[constants.PACK_PUBLISHED]
        ),
        "programs": offerings_repo.count_offerings(KIND_EXCHANGE, institution_id),
        "published_programs": offerings_repo.count_offerings(
            KIND_EXCHANGE, institution_id, statuses=[constants.PACK_PUBLISHED]
        ),
        "pending_selections": sum(
            offerings_repo.count_selections(kind, institution_id, status=constants.SELECTION_PENDING)
            for kind in (KIND_COURSE, KIND_EXCHANGE)
        ),
        "students": profiles_repo.count_profiles(institution_id=institution_id, role=constants.ROLE_STUDENT),
        "managers": profiles_repo.count_profiles(
            institution_id=institution_id, role=constants.ROLE_PROGRAM_MANAGER
        ),
    }


def platform_summary() -> Dict[str, int]:
    return {
        "institutions": institutions_repo.count_institutions(),
        "active_institutions": institutions_repo.count_institutions(active_only=True),
        "users": profiles_repo.count_profiles(),
        "plans": plans_repo.count_plans(),
    }


__all__ = ["student_summary", "institution_summary", "platform_summary"]
