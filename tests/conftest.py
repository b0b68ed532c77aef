"""
Shared fixtures: a throwaway SQLite database with a small faculty,
and fake LLM providers/adapters so no test touches the network.
"""

import json
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import Config
from llm.provider import LLMProvider, LLMResponse
from models import ProjectStatus
from storage.db import Storage


# ──────────────────────────────────────────────
# Fakes
# ──────────────────────────────────────────────

class FakeProvider(LLMProvider):
    """Returns canned reply texts in order, or raises when given an exception."""

    def __init__(self, replies):
        self._replies = list(replies)
        self.calls = []

    def complete(self, system_prompt, user_prompt, temperature=0.3,
                 max_tokens=4000, json_output=False):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "json_output": json_output,
        })
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(text=reply, input_tokens=10, output_tokens=20, model="fake-model")

    def name(self):
        return "fake/fake-model"


class FakeAdapter:
    """Stands in for ProviderAdapter. Returns canned result dicts in order."""

    def __init__(self, results):
        self._results = list(results)
        self.calls = []

    def name(self):
        return "fake/fake-model"

    def generate_recommendations(self, students, projects, supervisors):
        self.calls.append({"students": students, "projects": projects, "supervisors": supervisors})
        result = self._results.pop(0) if len(self._results) > 1 else self._results[0]
        if isinstance(result, Exception):
            raise result
        return result


def llm_ok(allocations, summary=None, recommendations=None):
    """Adapter success shape."""
    return {
        "allocations": allocations,
        "summary": summary or {},
        "recommendations": recommendations or [],
        "errors": [],
    }


def llm_failed(message="Invalid JSON response from LLM"):
    """Adapter failure shape."""
    return {"allocations": [], "errors": [message]}


def llm_reply(allocations, summary=None, recommendations=None) -> str:
    """Raw reply text the way a model would send it."""
    return json.dumps({
        "allocations": allocations,
        "summary": summary or {"total_allocations": len(allocations)},
        "recommendations": recommendations or [],
    })


# ──────────────────────────────────────────────
# Storage fixtures
# ──────────────────────────────────────────────

@dataclass
class Faculty:
    """Ids of the seeded records."""
    cs: int
    ee: int
    ai: int
    networks: int
    security: int
    students: list
    projects: list
    draft_project: int
    sup_a: int
    sup_b: int
    sup_inactive: int


@pytest.fixture
def test_config():
    return Config(
        llm_default_provider="gemini",
        gemini_api_key="test-gemini-key",
        openai_api_key="",
        anthropic_api_key="",
        allocation_max_retries=1,
        allocation_retry_backoff=0.0,
        allocation_batch_size=50,
        fallback_to_rule_based=False,
    )


@pytest.fixture
def tmp_storage():
    """Create a temporary Storage instance for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        storage = Storage(db_path)
        yield storage
        storage.close()


@pytest.fixture
def faculty(tmp_storage):
    """
    Two departments, three specializations.
    Students 1-3 in CS with submitted projects, student 4 in EE with a draft.
    sup_a: CS, AI + Networks, capacity 5
    sup_b: EE, AI, capacity 2
    sup_inactive: CS, AI + Networks + Security, capacity 5, inactive
    """
    s = tmp_storage
    cs = s.add_department("Computer Science", "CSC").id
    ee = s.add_department("Electrical Engineering", "EEE").id
    ai = s.add_specialization("Artificial Intelligence").id
    networks = s.add_specialization("Networks").id
    security = s.add_specialization("Security").id

    students = [
        s.add_student(f"Student {i}", f"student{i}@uni.edu", f"CSC/{i:03d}", cs, level="400").id
        for i in range(1, 4)
    ]
    ee_student = s.add_student("Student 4", "student4@uni.edu", "EEE/004", ee, level="400").id

    projects = [
        s.add_project(students[0], "Neural route planner", status=ProjectStatus.SUBMITTED,
                      specialization_ids=[ai, networks]).id,
        s.add_project(students[1], "Chatbot for registry", status=ProjectStatus.SUBMITTED,
                      specialization_ids=[ai]).id,
        s.add_project(students[2], "Campus mesh network", status=ProjectStatus.SUBMITTED,
                      specialization_ids=[networks]).id,
    ]
    draft = s.add_project(ee_student, "Unfinished idea", specialization_ids=[security]).id

    sup_a = s.add_supervisor("Dr. Ada", "ada@uni.edu", "STF001", cs, max_students=5,
                             specialization_ids=[ai, networks]).id
    sup_b = s.add_supervisor("Dr. Bello", "bello@uni.edu", "STF002", ee, max_students=2,
                             specialization_ids=[ai]).id
    sup_inactive = s.add_supervisor("Dr. Idle", "idle@uni.edu", "STF003", cs, max_students=5,
                                    is_active=False, specialization_ids=[ai, networks, security]).id

    return Faculty(
        cs=cs, ee=ee, ai=ai, networks=networks, security=security,
        students=students + [ee_student], projects=projects, draft_project=draft,
        sup_a=sup_a, sup_b=sup_b, sup_inactive=sup_inactive,
    )
