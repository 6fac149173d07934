"""
Shared fixtures for the classroom AI pipeline tests.
The language model is replaced by an in-memory fake; zero network calls.
"""
import json

import pytest

from classroom_ai.schemas import LLMResponse


class FakeLLMClient:
    """Stands in for LLMClient: returns queued replies or raises a preset error."""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.requests = []

    async def generate_completion(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        content = self.responses.pop(0) if self.responses else ""
        return LLMResponse(content=content, model="fake-model")


def water_cycle_questions(count=5):
    stages = ["evaporation", "condensation", "precipitation", "collection", "transpiration"]
    return {
        "questions": [
            {
                "question": f"Which word describes stage {i + 1} of the water cycle?",
                "options": [stages[i % 5].title(), "Melting", "Freezing", "Erosion"],
                "correctAnswer": 0,
                "explanation": f"{stages[i % 5].title()} is part of the water cycle.",
            }
            for i in range(count)
        ]
    }


@pytest.fixture
def fake_llm():
    return FakeLLMClient


@pytest.fixture
def water_cycle_payload():
    return json.dumps(water_cycle_questions(5))


@pytest.fixture
def water_cycle_text():
    return (
        "The water cycle describes how water moves around our planet. "
        "The sun heats water in oceans and lakes and it rises as vapor. "
        "The vapor cools into clouds and falls back as rain or snow."
    )


@pytest.fixture
def science_rubric():
    return {
        "totalPoints": 20,
        "criteria": [
            {"name": "Accuracy", "description": "sunlight photosynthesis", "maxPoints": 10},
            {"name": "Detail", "description": "roots absorb minerals", "maxPoints": 10},
        ],
    }
