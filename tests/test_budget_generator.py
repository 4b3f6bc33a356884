"""
Construction Budget Engine
Tests — Budget structure generator (answer parsing + Gemini retry).
"""

import json

import pytest

from app.ai.budget_generator import GeminiCategoryGenerator, parse_generated_categories
from app.core.exceptions import ValidationError


ANSWER = [
    {
        "id": "model_cat",
        "name": "1. Site works",
        "categoryTotal": 123456,
        "progress": 60,
        "items": [
            {"id": "model_item", "description": "Clearing", "unit": "m²",
             "quantity": 120, "unitPrice": 3, "totalPrice": 1},
            {"description": "Fencing", "unit": "m", "quantity": 40, "unitPrice": 0},
        ],
    },
    {"items": []},
]


class TestParse:
    def test_fenced_answer_gets_fresh_ids_and_recomputed_totals(self):
        content = "```json\n" + json.dumps(ANSWER) + "\n```"
        categories = parse_generated_categories(content)

        first = categories[0]
        assert first.id != "model_cat"
        assert first.id.startswith("cat_")
        assert first.items[0].id != "model_item"
        assert first.items[0].total_price == 360
        assert first.category_total == 360
        assert first.progress == 0
        assert categories[1].name == "Stage 2"

    def test_array_embedded_in_prose(self):
        content = "Here is the estimate:\n" + json.dumps(ANSWER[:1]) + "\nGood luck."
        assert [c.name for c in parse_generated_categories(content)] == ["1. Site works"]

    def test_object_with_categories_key(self):
        content = json.dumps({"categories": ANSWER[:1]})
        assert len(parse_generated_categories(content)) == 1

    @pytest.mark.parametrize("content", ["not json at all", '{"categories": 3}', "[{broken"])
    def test_unusable_answer_rejected(self, content):
        with pytest.raises(ValidationError):
            parse_generated_categories(content)


class _RateLimited(Exception):
    code = 429


class _Response:
    def __init__(self, text):
        self.text = text


class _Models:
    def __init__(self, failures, error=_RateLimited, message="429 RESOURCE_EXHAUSTED"):
        self.failures = failures
        self.error = error
        self.message = message
        self.calls = 0

    def generate_content(self, model, contents):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(self.message)
        return _Response(json.dumps(ANSWER[:1]))


class _Client:
    def __init__(self, models):
        self.models = models


class TestGeminiGenerator:
    def _generator(self, models, monkeypatch, max_retries=3):
        monkeypatch.setattr("app.ai.budget_generator.time.sleep", lambda _s: None)
        gen = GeminiCategoryGenerator(api_key="test", max_retries=max_retries, backoff_seconds=0)
        gen._client = _Client(models)
        return gen

    def test_rate_limit_is_retried(self, monkeypatch):
        models = _Models(failures=2)
        categories = self._generator(models, monkeypatch).generate_categories("Casa", "House")
        assert models.calls == 3
        assert categories[0].category_total == 360

    def test_retries_exhausted(self, monkeypatch):
        models = _Models(failures=5)
        with pytest.raises(_RateLimited):
            self._generator(models, monkeypatch, max_retries=2).generate_categories("Casa", "House")
        assert models.calls == 2

    def test_other_errors_not_retried(self, monkeypatch):
        models = _Models(failures=1, error=ValueError, message="invalid model name")
        with pytest.raises(ValueError):
            self._generator(models, monkeypatch).generate_categories("Casa", "House")
        assert models.calls == 1
