"""
Construction Budget Engine
Budget structure generator — drafts categories and items from a scope text.

The generator is a collaborator of the budget service. The model answers
with JSON, which ``parse_generated_categories`` turns into BudgetCategory
objects with fresh ids and recomputed totals. Nothing the model says about
totals or progress is trusted.

Usage:
    from app.ai.budget_generator import GeminiCategoryGenerator
    gen = GeminiCategoryGenerator(api_key="...", model="gemini-2.5-flash")
    categories = gen.generate_categories("Casa Silva", "Two-storey house, 120 m²")
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod

from app.core.exceptions import ValidationError
from app.services.cost_model import BudgetCategory, BudgetItem, new_id

logger = logging.getLogger(__name__)


BUDGET_STRUCTURE_PROMPT = """\
Act as a senior civil engineer specialised in construction cost estimates.
Build a work breakdown structure / estimate for the following project.

Project name: {project_name}
Scope: {scope_text}

List the essential stages (categories) and main services (items) for this
kind of work. For every item give a standard unit (m², un, m³, vb) and an
approximate quantity derived from the scope (an educated guess is fine).
The unit price may be 0.

Answer ONLY with a JSON array of categories, no markdown:
[
  {{
    "name": "1. Preliminary services",
    "items": [
      {{"description": "Site clearing", "unit": "m²", "quantity": 100, "unitPrice": 0, "notes": "Estimated"}}
    ]
  }}
]
"""


# ── Parsing ──────────────────────────────────────────────────────────────────


def _strip_fences(content: str) -> str:
    cleaned = (content or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)
    return cleaned.strip()


def parse_generated_categories(content: str) -> list[BudgetCategory]:
    """
    Turn a model answer into categories.

    Markdown fences are stripped. Ids are always regenerated; totals are
    recomputed from quantity × unitPrice; progress starts at 0.

    Raises:
        ValidationError: the answer is not a JSON list of categories.
    """
    cleaned = _strip_fences(content)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\[.*\]", cleaned, re.DOTALL)
        if not match:
            raise ValidationError("Generated budget is not valid JSON", details={"content": cleaned[:200]})
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError:
            raise ValidationError("Generated budget is not valid JSON", details={"content": cleaned[:200]})

    if isinstance(data, dict):
        data = data.get("categories", [])
    if not isinstance(data, list):
        raise ValidationError("Generated budget must be a list of categories")

    categories = []
    for idx, raw in enumerate(data, start=1):
        if not isinstance(raw, dict):
            continue
        items = [
            BudgetItem.from_dict({**item, "id": new_id("item")})
            for item in raw.get("items") or []
            if isinstance(item, dict)
        ]
        categories.append(BudgetCategory(
            id=new_id("cat"),
            name=str(raw.get("name") or f"Stage {idx}"),
            items=items,
        ).recalculated())
    return categories


# ── Generators ───────────────────────────────────────────────────────────────


class CategoryGenerator(ABC):
    """Produces a draft category list for a project."""

    @abstractmethod
    def generate_categories(self, project_name: str, scope_text: str) -> list[BudgetCategory]:
        ...


class GeminiCategoryGenerator(CategoryGenerator):
    """
    Google Gemini backed generator.

    Retries rate-limit errors (429 / RESOURCE_EXHAUSTED) with exponential
    backoff; any other error propagates.
    """

    def __init__(self, api_key: str = "", model: str = "gemini-2.5-flash",
                 max_retries: int = 3, backoff_seconds: float = 1.0):
        self.api_key = api_key
        self.model = model
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from google import genai
                self._client = genai.Client(api_key=self.api_key)
            except ImportError:
                raise RuntimeError(
                    "google-genai package not installed. Run: pip install google-genai"
                )
        return self._client

    @staticmethod
    def _is_rate_limited(exc: Exception) -> bool:
        code = getattr(exc, "code", None) or getattr(exc, "status", None)
        message = str(exc)
        return code in (429, "RESOURCE_EXHAUSTED") or "RESOURCE_EXHAUSTED" in message or "429" in message

    def _generate_text(self, prompt: str) -> str:
        client = self._get_client()
        for attempt in range(1, self.max_retries + 1):
            try:
                response = client.models.generate_content(model=self.model, contents=prompt)
                return response.text or "[]"
            except Exception as e:
                if not self._is_rate_limited(e) or attempt == self.max_retries:
                    raise
                wait = self.backoff_seconds * 2 ** (attempt - 1)
                logger.warning("Gemini rate limit hit (attempt %d/%d), retrying in %.1fs",
                               attempt, self.max_retries, wait)
                time.sleep(wait)
        raise RuntimeError("Unexpected retry loop exit")

    def generate_categories(self, project_name: str, scope_text: str) -> list[BudgetCategory]:
        prompt = BUDGET_STRUCTURE_PROMPT.format(project_name=project_name, scope_text=scope_text)
        content = self._generate_text(prompt)
        categories = parse_generated_categories(content)
        logger.info("Generated %d budget categories for %r with %s", len(categories), project_name, self.model)
        return categories
