"""
Prompts for LLM-advised supervisor allocation.

One system prompt and one user template, shared by every provider. Only the
request envelope differs per vendor (see llm/*). The output contract below
is what allocation.parser validates against.
"""

import json

ALLOCATION_SYSTEM = """\
You are an AI system designed to allocate students to supervisors for academic \
projects. Provide responses in valid JSON format only."""

OUTPUT_FORMAT = """\
{
    "allocations": [
        {
            "student_id": 1,
            "supervisor_id": 2,
            "project_id": 3,
            "match_score": 85.5,
            "reasoning": "Strong match in AI specialization, same department, supervisor has capacity"
        }
    ],
    "summary": {
        "total_allocations": 10,
        "average_match_score": 82.3,
        "unallocated_students": 2,
        "capacity_utilization": "85%"
    },
    "recommendations": [
        "Consider adding more AI specialists to handle demand",
        "Some supervisors are underutilized and could take more students"
    ]
}"""

ALLOCATION_USER = """\
Analyze the following data and provide allocation recommendations for matching \
students with supervisors based on project specializations, supervisor expertise, \
and capacity constraints.

STUDENTS DATA:
{students}

PROJECTS DATA:
{projects}

SUPERVISORS DATA:
{supervisors}

ALLOCATION RULES:
1. Each student can only be allocated to one supervisor
2. Supervisors have maximum capacity limits (max_students field); \
current_student_count is how many they already supervise
3. Prioritize matching project specializations with supervisor specializations
4. Consider department alignment (bonus points for same department)
5. Distribute workload evenly among supervisors
6. Ensure all allocations are feasible and respect constraints

Provide your response in the following JSON format:
{output_format}

match_score is a number from 0 to 100. Use the numeric "id" fields from the \
data above for student_id, supervisor_id and project_id.

IMPORTANT: Respond ONLY with valid JSON. Do not include any explanatory text \
before or after the JSON response.
"""


def _to_json(data: list[dict]) -> str:
    # No sort_keys: field order is the order the payload builders chose
    return json.dumps(data, indent=4, ensure_ascii=False, default=str)


def build_allocation_prompt(students: list[dict], projects: list[dict], supervisors: list[dict]) -> str:
    """Render the three input collections and the output contract into one prompt."""
    return ALLOCATION_USER.format(
        students=_to_json(students),
        projects=_to_json(projects),
        supervisors=_to_json(supervisors),
        output_format=OUTPUT_FORMAT,
    )
