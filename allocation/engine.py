"""
Allocation engine. Takes stored projects/supervisors + an LLM adapter,
produces pending allocations.

Two paths:
- generate_allocations(): LLM-advised, batch, partial success is normal.
- allocate_project(): rule-based scoring for a single project.

The LLM is untrusted. Every recommendation is re-checked against live
storage inside its own write transaction before anything is committed.
"""

import logging
import math
import sqlite3
import time

from allocation.adapter import ProviderAdapter, create_adapter
from allocation.scoring import match_score, rank_supervisors
from allocation.stats import get_statistics
from config.settings import Config
from models import (
    Allocation, AllocationResult, AllocationStatus, Project, Student, Supervisor,
)
from storage.db import Storage

log = logging.getLogger(__name__)

NO_CANDIDATES_MESSAGE = "No submitted projects found for allocation."
NO_RECOMMENDATIONS_MESSAGE = "LLM returned no allocation recommendations"
DEFAULT_NOTES = "AI-generated allocation"

# Row ids are positive signed 64-bit integers
SQLITE_MAX_INTEGER = 2**63 - 1


class AllocationError(Exception):
    """An allocation rule was violated. Nothing was written."""
    pass


class NotFoundError(AllocationError):
    """A referenced record does not exist."""
    pass


# ── Payloads for the prompt ──

def _department_payload(department) -> dict | None:
    if department is None:
        return None
    return {"id": department.id, "name": department.name, "code": department.code}


def _specializations_payload(specializations) -> list[dict]:
    return [
        {"id": s.id, "name": s.name, "description": s.description}
        for s in specializations
    ]


def student_payload(student: Student) -> dict:
    return {
        "id": student.id,
        "name": student.name,
        "email": student.email,
        "student_id": student.student_number,
        "department": _department_payload(student.department),
        "level": student.level,
        "session": student.session,
    }


def project_payload(project: Project) -> dict:
    return {
        "id": project.id,
        "student_id": project.student_id,
        "title": project.title,
        "description": project.description,
        "objectives": project.objectives,
        "methodology": project.methodology,
        "status": project.status.value,
        "specializations": _specializations_payload(project.specializations),
    }


def supervisor_payload(supervisor: Supervisor) -> dict:
    return {
        "id": supervisor.id,
        "name": supervisor.name,
        "email": supervisor.email,
        "staff_id": supervisor.staff_id,
        "title": supervisor.title,
        "bio": supervisor.bio,
        "department": _department_payload(supervisor.department),
        "max_students": supervisor.max_students,
        "current_student_count": supervisor.current_student_count,
        "specializations": _specializations_payload(supervisor.specializations),
    }


def _coerce_id(value, field: str) -> int:
    if isinstance(value, bool):
        raise AllocationError(f"Invalid {field}: {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise AllocationError(f"Invalid {field}: {value!r}")
    if number != value and str(number) != str(value).strip():
        # Reject 3.7 or "3.7" instead of silently truncating
        raise AllocationError(f"Invalid {field}: {value!r}")
    if not 0 < number <= SQLITE_MAX_INTEGER:
        raise AllocationError(f"Invalid {field}: {value!r}")
    return number


def _coerce_score(value) -> float | None:
    """LLM match_score -> 0-100 float, None if absent. Non-numeric is an error."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise AllocationError(f"Invalid match_score: {value!r}")
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise AllocationError(f"Invalid match_score: {value!r}")
    if not math.isfinite(score):
        raise AllocationError(f"Invalid match_score: {value!r}")
    return round(min(max(score, 0.0), 100.0), 2)


def _batches(items: list, size: int) -> list[list]:
    size = max(size, 1)
    return [items[i:i + size] for i in range(0, len(items), size)]


class AllocationEngine:
    def __init__(self, storage: Storage, config: Config | None = None,
                 adapter: ProviderAdapter | None = None):
        self._storage = storage
        self._config = config or Config()
        self._adapter = adapter

    @property
    def adapter(self) -> ProviderAdapter:
        """The LLM adapter, created from config on first use."""
        if self._adapter is None:
            self._adapter = create_adapter(self._config)
        return self._adapter

    # ── LLM path ──

    def generate_allocations(self) -> AllocationResult:
        """
        Generate pending allocations for every submitted, unallocated project.

        Returns an AllocationResult. Never raises: unexpected failures become
        a single error entry.
        """
        candidates: list[Project] = []
        try:
            candidates = self._storage.get_unallocated_submitted_projects()
            if not candidates:
                log.info("No submitted projects to allocate")
                return AllocationResult(errors=[NO_CANDIDATES_MESSAGE])

            adapter = self.adapter
            llm_result = self._request_recommendations(adapter, candidates)
            if not llm_result["errors"] and not llm_result["allocations"]:
                log.warning(f"{adapter.name()} recommended nothing for {len(candidates)} projects")
                llm_result["errors"] = [NO_RECOMMENDATIONS_MESSAGE]

            if llm_result["errors"]:
                if self._config.fallback_to_rule_based:
                    return self._fallback(candidates, llm_result["errors"], adapter.name())
                return AllocationResult(errors=llm_result["errors"], provider=adapter.name())

            allocations, errors = self._process_recommendations(llm_result["allocations"])
            log.info(
                f"LLM allocation run: {len(allocations)} created, "
                f"{len(errors)} rejected, {len(candidates)} candidate projects"
            )
            return AllocationResult(
                allocations=allocations,
                summary=llm_result["summary"],
                recommendations=llm_result["recommendations"],
                errors=errors,
                provider=adapter.name(),
            )

        except Exception as e:
            log.exception(f"LLM allocation generation failed ({len(candidates)} projects)")
            return AllocationResult(errors=[f"LLM allocation failed: {e}"])

    def _request_recommendations(self, adapter: ProviderAdapter, candidates: list[Project]) -> dict:
        """
        One adapter call per batch of projects, each with retries.
        Any batch that still fails makes the whole run fail: no partial commit.
        """
        supervisors = [supervisor_payload(s) for s in self._storage.get_active_supervisors()]
        batches = _batches(candidates, self._config.allocation_batch_size)

        allocations: list[dict] = []
        summaries: list[dict] = []
        recommendations: list[str] = []

        for index, batch in enumerate(batches, 1):
            student_ids = sorted({p.student_id for p in batch})
            students = [student_payload(s) for s in self._storage.get_students(student_ids)]
            projects = [project_payload(p) for p in batch]

            result = self._call_with_retries(adapter, students, projects, supervisors)
            if result["errors"]:
                if len(batches) > 1:
                    log.error(f"Batch {index}/{len(batches)} failed, aborting run")
                return {"allocations": [], "errors": result["errors"]}

            allocations.extend(result["allocations"])
            summaries.append(result.get("summary") or {})
            recommendations.extend(result.get("recommendations") or [])

        summary = summaries[0] if len(summaries) == 1 else {"batches": summaries}
        return {
            "allocations": allocations,
            "summary": summary,
            "recommendations": recommendations,
            "errors": [],
        }

    def _call_with_retries(self, adapter, students, projects, supervisors) -> dict:
        attempts = max(self._config.allocation_max_retries, 1)
        result: dict = {"allocations": [], "errors": []}
        for attempt in range(1, attempts + 1):
            result = adapter.generate_recommendations(students, projects, supervisors)
            if not result.get("errors"):
                return result
            if attempt < attempts:
                delay = self._config.allocation_retry_backoff * attempt
                log.warning(
                    f"Attempt {attempt}/{attempts} failed: {'; '.join(result['errors'])}. "
                    f"Retrying in {delay:.1f}s"
                )
                if delay > 0:
                    time.sleep(delay)
        return result

    def _process_recommendations(self, recommendations: list[dict]) -> tuple[list[Allocation], list[str]]:
        allocations = []
        errors = []
        for recommendation in recommendations:
            try:
                allocations.append(self._create_from_recommendation(recommendation))
            except AllocationError as e:
                errors.append(f"Failed to process recommendation: {e}")
            except sqlite3.IntegrityError as e:
                errors.append(f"Failed to process recommendation: constraint violated ({e})")
            except (sqlite3.Error, OverflowError) as e:
                # Earlier recommendations are already committed
                errors.append(f"Failed to process recommendation: storage error ({e})")

        if errors:
            log.warning(f"{len(errors)} LLM recommendations rejected:\n" + "\n".join(errors))
        return allocations, errors

    def _create_from_recommendation(self, recommendation: dict) -> Allocation:
        if not isinstance(recommendation, dict):
            raise AllocationError("Invalid recommendation format")
        student_id = _coerce_id(recommendation.get("student_id"), "student_id")
        supervisor_id = _coerce_id(recommendation.get("supervisor_id"), "supervisor_id")
        project_id = _coerce_id(recommendation.get("project_id"), "project_id")
        score = _coerce_score(recommendation.get("match_score"))
        notes = recommendation.get("reasoning") or DEFAULT_NOTES

        with self._storage.transaction():
            if self._storage.student_has_approved_allocation(student_id):
                raise AllocationError(f"Student {student_id} already has an approved allocation")

            supervisor = self._storage.get_supervisor(supervisor_id)
            if supervisor is None or not supervisor.is_active or not supervisor.can_accept_more_students():
                raise AllocationError(f"Supervisor {supervisor_id} cannot accept more students")

            project = self._storage.get_project(project_id)
            if project is None or project.student_id != student_id:
                raise AllocationError(
                    f"Project {project_id} not found or doesn't belong to student {student_id}"
                )
            if self._storage.project_has_allocation(project_id):
                raise AllocationError(f"Project {project_id} already has an allocation")

            return self._storage.create_allocation(
                project_id=project_id,
                student_id=student_id,
                supervisor_id=supervisor_id,
                match_score=score,
                admin_notes=str(notes),
            )

    def _fallback(self, candidates: list[Project], llm_errors: list[str], provider: str) -> AllocationResult:
        log.warning(f"LLM path failed ({'; '.join(llm_errors)}). Falling back to rule-based allocation.")
        allocations = []
        errors = [f"LLM: {e}" for e in llm_errors]
        for project in candidates:
            try:
                allocations.append(self.allocate_project(project.id))
            except AllocationError as e:
                errors.append(f"Project {project.id}: {e}")
            except sqlite3.IntegrityError as e:
                errors.append(f"Project {project.id}: constraint violated ({e})")
        return AllocationResult(
            allocations=allocations,
            errors=errors,
            provider=provider,
            fallback_used=True,
        )

    # ── Rule-based path ──

    def allocate_project(self, project_id: int) -> Allocation:
        """
        Allocate one project to the best-scoring available supervisor.
        Raises AllocationError if nobody is available or nobody scores above zero.
        """
        with self._storage.transaction():
            project = self._storage.get_project(project_id)
            if project is None:
                raise NotFoundError(f"Project {project_id} not found")
            if self._storage.project_has_allocation(project.id):
                raise AllocationError(f"Project {project.id} already has an allocation")

            supervisors = self._storage.get_available_supervisors()
            if not supervisors:
                raise AllocationError("No available supervisors found.")

            student = self._storage.get_student(project.student_id)
            department_id = student.department_id if student else None
            matches = rank_supervisors(project, supervisors, department_id)
            if not matches:
                raise AllocationError("No suitable supervisors found for this project.")

            best, score = matches[0]
            log.info(f"Project {project.id} -> supervisor {best.id} (score {score})")
            return self._storage.create_allocation(
                project_id=project.id,
                student_id=project.student_id,
                supervisor_id=best.id,
                match_score=score,
            )

    def reallocate_project(self, allocation_id: int, supervisor_id: int) -> Allocation:
        """Move an allocation to another supervisor and mark it reassigned."""
        with self._storage.transaction():
            allocation = self._require_allocation(allocation_id)
            supervisor = self._storage.get_supervisor(supervisor_id)
            if supervisor is None:
                raise NotFoundError(f"Supervisor {supervisor_id} not found")
            if not supervisor.is_active:
                raise AllocationError(f"Supervisor {supervisor_id} is not active")
            if not supervisor.can_accept_more_students():
                raise AllocationError("The selected supervisor has reached their maximum student limit.")

            project = self._storage.get_project(allocation.project_id)
            student = self._storage.get_student(allocation.student_id)
            score = match_score(project, supervisor, student.department_id if student else None)

            try:
                return self._storage.update_allocation(
                    allocation.id,
                    supervisor_id=supervisor.id,
                    status=AllocationStatus.REASSIGNED,
                    match_score=score,
                )
            except sqlite3.IntegrityError as e:
                raise AllocationError(f"Cannot reassign allocation {allocation.id}: {e}") from e

    # ── Administrative transitions ──

    def approve_allocation(self, allocation_id: int, admin_notes: str | None = None) -> Allocation:
        """Approve, enforcing one approval per student and supervisor capacity."""
        with self._storage.transaction():
            allocation = self._require_allocation(allocation_id)
            if allocation.status == AllocationStatus.APPROVED:
                return allocation

            if self._storage.student_has_approved_allocation(allocation.student_id, exclude_id=allocation.id):
                raise AllocationError(f"Student {allocation.student_id} already has an approved allocation")

            supervisor = self._storage.get_supervisor(allocation.supervisor_id)
            if supervisor is None or not supervisor.can_accept_more_students():
                raise AllocationError(
                    f"Supervisor {allocation.supervisor_id} has reached their maximum student limit."
                )

            fields = {"status": AllocationStatus.APPROVED}
            if admin_notes is not None:
                fields["admin_notes"] = admin_notes
            return self._storage.update_allocation(allocation.id, **fields)

    def reject_allocation(self, allocation_id: int, reason: str) -> Allocation:
        if not reason or not reason.strip():
            raise AllocationError("A rejection reason is required")
        with self._storage.transaction():
            allocation = self._require_allocation(allocation_id)
            return self._storage.update_allocation(
                allocation.id,
                status=AllocationStatus.REJECTED,
                rejection_reason=reason.strip(),
            )

    def delete_allocation(self, allocation_id: int):
        if not self._storage.delete_allocation(allocation_id):
            raise NotFoundError(f"Allocation {allocation_id} not found")

    def get_allocation(self, allocation_id: int) -> Allocation:
        return self._require_allocation(allocation_id)

    def list_allocations(self, status: AllocationStatus | None = None) -> list[Allocation]:
        return self._storage.list_allocations(status=status)

    def get_statistics(self) -> dict:
        return get_statistics(self._storage)

    def _require_allocation(self, allocation_id: int) -> Allocation:
        allocation = self._storage.get_allocation(allocation_id)
        if allocation is None:
            raise NotFoundError(f"Allocation {allocation_id} not found")
        return allocation
