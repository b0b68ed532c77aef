"""
Output delivery. CLI (stdout) only.
"""

from datetime import datetime, timezone

from models import Allocation, AllocationResult

SEPARATOR = "─" * 60


def _header(title: str):
    print(f"\n{SEPARATOR}")
    print(f"  {title}")
    print(f"  {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}")
    print(SEPARATOR)


def _allocation_line(a: Allocation) -> str:
    score = f"{a.match_score:.2f}" if a.match_score is not None else "n/a"
    return (
        f"  #{a.id:<5} project={a.project_id:<5} student={a.student_id:<5} "
        f"supervisor={a.supervisor_id:<5} score={score:<7} {a.status.value}"
    )


def deliver_result(result: AllocationResult):
    """Print one allocation run."""
    _header("ALLOCATION RUN")
    if result.provider:
        print(f"  Provider: {result.provider}" + ("  (rule-based fallback)" if result.fallback_used else ""))
    print(f"  Created: {len(result.allocations)}   Errors: {len(result.errors)}")
    print(SEPARATOR)

    for allocation in result.allocations:
        print(_allocation_line(allocation))
        if allocation.admin_notes:
            print(f"         {allocation.admin_notes}")

    if result.summary:
        print("\n  Summary:")
        for key, value in result.summary.items():
            print(f"    {key.replace('_', ' ').title()}: {value}")

    if result.recommendations:
        print("\n  Recommendations:")
        for rec in result.recommendations:
            print(f"    • {rec}")

    if result.errors:
        print("\n  Errors:")
        for error in result.errors:
            print(f"    • {error}")
    print(SEPARATOR)


def deliver_statistics(stats: dict, title: str = "ALLOCATION STATISTICS"):
    _header(title)
    print(f"  Total projects:       {stats['total_projects']}")
    print(f"  Allocated projects:   {stats['allocated_projects']}")
    print(f"  Pending allocations:  {stats['pending_allocations']}")
    print(f"  Allocation rate:      {stats['allocation_rate']:.2f}%")
    print(f"  Average match score:  {stats['average_match_score']:.2f}")
    print(SEPARATOR)


def deliver_allocations(allocations: list[Allocation]):
    _header(f"ALLOCATIONS ({len(allocations)})")
    for allocation in allocations:
        print(_allocation_line(allocation))
    print(SEPARATOR)


def deliver_provider_status(status: dict[str, dict]):
    _header("LLM PROVIDERS")
    for key, info in status.items():
        marker = "*" if info["default"] else " "
        configured = "configured" if info["configured"] else "missing api key"
        endpoint = ", custom endpoint" if info["has_custom_endpoint"] else ""
        print(f" {marker} {key:<10} {info['name']:<18} {info['model']:<28} {configured}{endpoint}")
    print(SEPARATOR)
