"""
Deterministic project-to-supervisor scoring. No LLM.
Used by the rule-based allocation path and to rescore on reallocation.

score = 0.7 * specialization overlap (% of the project's tags the supervisor covers)
      + 20 if student and supervisor share a department
      + 10 * free capacity fraction
capped at 100.
"""

from models import Project, Supervisor

SPECIALIZATION_WEIGHT = 0.7
DEPARTMENT_BONUS = 20.0
CAPACITY_WEIGHT = 10.0
MAX_SCORE = 100.0


def match_score(project: Project, supervisor: Supervisor, student_department_id: int | None) -> float:
    """Fit between one project and one supervisor, 0-100, two decimals."""
    score = 0.0

    project_specs = project.specialization_ids
    if project_specs:
        overlap = len(project_specs & supervisor.specialization_ids)
        score += (overlap / len(project_specs)) * 100 * SPECIALIZATION_WEIGHT

    if student_department_id is not None and student_department_id == supervisor.department_id:
        score += DEPARTMENT_BONUS

    if supervisor.max_students > 0:
        free = max(supervisor.max_students - supervisor.current_student_count, 0)
        score += (free / supervisor.max_students) * CAPACITY_WEIGHT

    return round(min(score, MAX_SCORE), 2)


def rank_supervisors(
    project: Project,
    supervisors: list[Supervisor],
    student_department_id: int | None,
) -> list[tuple[Supervisor, float]]:
    """
    Supervisors with a positive score, best first.
    Python's sort is stable, so ties keep the input order.
    """
    scored = [
        (supervisor, match_score(project, supervisor, student_department_id))
        for supervisor in supervisors
    ]
    matches = [(s, score) for s, score in scored if score > 0]
    matches.sort(key=lambda pair: pair[1], reverse=True)
    return matches
