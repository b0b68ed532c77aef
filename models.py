"""
Core data types. No behavior beyond small derived accessors.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ProjectStatus(Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AllocationStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REASSIGNED = "reassigned"


@dataclass
class Department:
    id: int
    name: str
    code: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "code": self.code}


@dataclass
class Specialization:
    """Matching tag shared by projects and supervisors."""
    id: int
    name: str
    description: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass
class Student:
    id: int
    name: str
    email: str
    student_number: str     # matriculation number, not the row id
    department_id: int
    level: str = ""
    session: str = ""
    department: Department | None = None


@dataclass
class Project:
    id: int
    student_id: int
    title: str
    description: str = ""
    objectives: str = ""
    methodology: str = ""
    status: ProjectStatus = ProjectStatus.DRAFT
    specializations: list[Specialization] = field(default_factory=list)

    @property
    def specialization_ids(self) -> set[int]:
        return {s.id for s in self.specializations}


@dataclass
class Supervisor:
    id: int
    name: str
    email: str
    staff_id: str
    department_id: int
    max_students: int
    is_active: bool = True
    title: str = ""
    bio: str = ""
    specializations: list[Specialization] = field(default_factory=list)
    department: Department | None = None
    # Count of approved allocations at read time. Computed by Storage, never persisted.
    current_student_count: int = 0

    @property
    def specialization_ids(self) -> set[int]:
        return {s.id for s in self.specializations}

    def can_accept_more_students(self) -> bool:
        return self.current_student_count < self.max_students


@dataclass
class Allocation:
    """Binding of one project, one student and one supervisor."""
    id: int
    project_id: int
    student_id: int
    supervisor_id: int
    status: AllocationStatus = AllocationStatus.PENDING
    match_score: float | None = None    # 0-100
    admin_notes: str | None = None
    rejection_reason: str | None = None
    allocated_at: datetime | None = None    # set only while approved
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "student_id": self.student_id,
            "supervisor_id": self.supervisor_id,
            "status": self.status.value,
            "match_score": self.match_score,
            "admin_notes": self.admin_notes,
            "rejection_reason": self.rejection_reason,
            "allocated_at": self.allocated_at.isoformat() if self.allocated_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class AllocationResult:
    """Output of one allocation run."""
    allocations: list[Allocation] = field(default_factory=list)
    summary: dict = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    provider: str | None = None
    fallback_used: bool = False

    def to_dict(self) -> dict:
        return {
            "allocations": [a.to_dict() for a in self.allocations],
            "summary": self.summary,
            "recommendations": self.recommendations,
            "errors": self.errors,
            "provider": self.provider,
            "fallback_used": self.fallback_used,
        }
