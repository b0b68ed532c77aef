"""
Provider adapter: turns any LLMProvider into an allocation recommender.

The vendor provider handles the wire format. This class supplies everything
shared across vendors: the prompt, the output contract, parsing, shape
validation, and the normalized failure shape. Callers never see a
provider exception; they get {"allocations": [], "errors": [message]}.
"""

import logging

from allocation.parser import parse_allocation_response, validate_recommendations
from allocation.prompts import ALLOCATION_SYSTEM, build_allocation_prompt
from config.settings import Config
from llm.factory import create_provider, resolve_provider_name
from llm.provider import LLMProvider, LLMError

log = logging.getLogger(__name__)


class ProviderAdapter:
    def __init__(
        self,
        provider: LLMProvider,
        temperature: float = 0.3,
        max_tokens: int = 4000,
        log_prompts: bool = False,
        log_responses: bool = False,
    ):
        self._provider = provider
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._log_prompts = log_prompts
        self._log_responses = log_responses

    def name(self) -> str:
        return self._provider.name()

    def generate_recommendations(
        self,
        students: list[dict],
        projects: list[dict],
        supervisors: list[dict],
    ) -> dict:
        """
        Ask the LLM for allocations.

        Returns:
            {"allocations": [...], "summary": {...}, "recommendations": [...], "errors": []}
            on success, or {"allocations": [], "errors": [message]} on any failure.
        """
        try:
            prompt = build_allocation_prompt(students, projects, supervisors)
            if self._log_prompts:
                log.debug(f"Allocation prompt for {self.name()}:\n{prompt}")

            response = self._provider.complete(
                system_prompt=ALLOCATION_SYSTEM,
                user_prompt=prompt,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                json_output=True,
            )
            log.info(
                f"Allocation recommendations: {response.input_tokens} in, "
                f"{response.output_tokens} out ({response.model})"
            )
            if self._log_responses:
                log.debug(f"Raw response from {self.name()}:\n{response.text}")

            data = parse_allocation_response(response.text)
            if not data:
                raise LLMError("Invalid JSON response from LLM")
            if not validate_recommendations(data):
                raise LLMError("Invalid allocation recommendations format")

        except LLMError as e:
            log.error(
                f"{self.name()} allocation generation failed: {e} "
                f"(students={len(students)}, projects={len(projects)}, "
                f"supervisors={len(supervisors)})"
            )
            return {"allocations": [], "errors": [str(e)]}
        except Exception as e:
            log.exception(f"{self.name()} allocation generation failed unexpectedly")
            return {"allocations": [], "errors": [f"Unexpected provider failure: {e}"]}

        summary = data.get("summary")
        recommendations = data.get("recommendations")
        return {
            "allocations": data["allocations"],
            "summary": summary if isinstance(summary, dict) else {},
            "recommendations": [str(r) for r in recommendations] if isinstance(recommendations, list) else [],
            "errors": [],
        }


def create_adapter(config: Config, provider_name: str | None = None) -> ProviderAdapter:
    """
    Factory entry point: provider chosen by name or config default,
    model parameters from that provider's config block.
    Raises LLMConfigError for unknown providers or missing credentials.
    """
    name = resolve_provider_name(config, provider_name)
    settings = config.provider_settings(name)
    return ProviderAdapter(
        create_provider(config, name),
        temperature=settings["temperature"],
        max_tokens=settings["max_tokens"],
        log_prompts=config.log_prompts,
        log_responses=config.log_responses,
    )


def run_connection_check(adapter: ProviderAdapter) -> dict:
    """Round-trip one synthetic student/project/supervisor through the adapter."""
    students = [{
        "id": 1,
        "name": "Test Student",
        "department": {"id": 1, "name": "Computer Science", "code": "CSC"},
    }]
    projects = [{
        "id": 1,
        "student_id": 1,
        "title": "Test Project",
        "specializations": [{"id": 1, "name": "AI"}],
    }]
    supervisors = [{
        "id": 1,
        "name": "Test Supervisor",
        "department": {"id": 1, "name": "Computer Science", "code": "CSC"},
        "specializations": [{"id": 1, "name": "AI"}],
        "max_students": 5,
        "current_student_count": 0,
    }]

    result = adapter.generate_recommendations(students, projects, supervisors)
    if result["errors"]:
        return {
            "success": False,
            "message": "Connection test failed: " + ", ".join(result["errors"]),
        }
    return {
        "success": True,
        "message": f"Successfully connected to {adapter.name()}",
        "sample_response": result,
    }
