"""
Aggregate metrics over committed allocation state.
"""

from models import AllocationStatus, ProjectStatus
from storage.db import Storage


def get_statistics(storage: Storage) -> dict:
    total_projects = storage.count_projects(ProjectStatus.SUBMITTED)
    allocated = storage.count_allocations(AllocationStatus.APPROVED)
    pending = storage.count_allocations(AllocationStatus.PENDING)
    average = storage.average_match_score()

    return {
        "total_projects": total_projects,
        "allocated_projects": allocated,
        "pending_allocations": pending,
        "allocation_rate": (allocated / total_projects) * 100 if total_projects > 0 else 0.0,
        "average_match_score": round(average, 2) if average is not None else 0.0,
    }
