from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from intake_ai.models import DEFAULT_PROJECT_TYPE, PROJECT_TYPES, TaskRecord, TaskSample
from llm.llm_client import LLMClient, LLMUnavailableError
from llm.prompts import CLASSIFY_SYSTEM, build_classification_prompt

logger = logging.getLogger(__name__)

MAX_SAMPLE_TASKS = 10
MODEL_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.5

# Checked in order against the lower-cased project name; first hit wins.
KEYWORD_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("app", "mobile", "ios", "android"), "Mobil Uygulama"),
    (("shop", "store", "ecommerce", "e-commerce"), "E-ticaret"),
    (("game", "oyun"), "Oyun"),
    (("api", "backend", "service"), "API/Backend"),
    (("crm", "erp"), "CRM/ERP"),
    (("blog", "website", "site"), "Kurumsal Website"),
)

_LABELS_BY_KEY = {label.casefold(): label for label in PROJECT_TYPES}


def infer_project_type_from_name(name: Optional[str]) -> str:
    """Deterministic keyword match on the project name. Never raises."""
    lowered = (name or "").lower()
    for keywords, category in KEYWORD_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_PROJECT_TYPE


def normalize_label(reply: Optional[str]) -> Optional[str]:
    """Map a raw model reply onto the vocabulary, or None if it is not a known label."""
    if not reply:
        return None

    cleaned = reply.strip().splitlines()[0] if reply.strip() else ""
    cleaned = cleaned.strip().strip("\"'`*.-: ").strip()
    if cleaned.casefold() in _LABELS_BY_KEY:
        return _LABELS_BY_KEY[cleaned.casefold()]

    # "Kategori: E-ticaret" and similar chatter
    folded = reply.casefold()
    matches = [label for key, label in _LABELS_BY_KEY.items() if key in folded]
    if matches:
        return max(matches, key=len)
    return None


@dataclass(frozen=True)
class ClassificationResult:
    category: str
    confidence: float
    source: str  # "model" | "keywords"
    samples: tuple[TaskSample, ...] = ()


class ProjectClassifier:
    """Best-effort project type classification: the model when available, keywords otherwise."""

    def __init__(self, llm_client: Optional[LLMClient] = None, max_samples: int = MAX_SAMPLE_TASKS):
        self.llm = llm_client
        self.max_samples = max_samples

    def _client(self) -> LLMClient:
        if self.llm is None:
            self.llm = LLMClient()
        return self.llm

    def _samples(self, tasks: Sequence[Union[TaskRecord, TaskSample]]) -> tuple[TaskSample, ...]:
        samples = []
        for task in list(tasks)[: self.max_samples]:
            if isinstance(task, TaskSample):
                samples.append(task)
            else:
                samples.append(TaskSample.from_task(task))
        return tuple(samples)

    def _fallback(self, name: str, samples: tuple[TaskSample, ...]) -> ClassificationResult:
        return ClassificationResult(
            category=infer_project_type_from_name(name),
            confidence=FALLBACK_CONFIDENCE,
            source="keywords",
            samples=samples,
        )

    def classify_sync(self, name: str, tasks: Sequence[Union[TaskRecord, TaskSample]]) -> ClassificationResult:
        samples = self._samples(tasks)
        if not samples:
            return self._fallback(name, samples)

        try:
            reply = self._client().complete(
                build_classification_prompt(name, samples),
                system=CLASSIFY_SYSTEM,
                temperature=0.3,
                max_tokens=50,
            )
        except LLMUnavailableError as e:
            logger.warning(f"Classifier model unavailable, using keywords for '{name}': {e}")
            return self._fallback(name, samples)
        except Exception as e:
            logger.warning(f"Classifier call failed for '{name}', using keywords: {e}")
            return self._fallback(name, samples)

        category = normalize_label(reply)
        if category is None:
            logger.warning(f"Classifier returned unknown label {reply!r} for '{name}', using keywords")
            return self._fallback(name, samples)

        return ClassificationResult(
            category=category,
            confidence=MODEL_CONFIDENCE,
            source="model",
            samples=samples,
        )

    async def classify(self, name: str, tasks: Sequence[Union[TaskRecord, TaskSample]]) -> ClassificationResult:
        # providers use blocking HTTP
        return await asyncio.to_thread(self.classify_sync, name, tasks)

    async def classify_project(self, name: str, tasks: Sequence[Union[TaskRecord, TaskSample]]) -> str:
        result = await self.classify(name, tasks)
        return result.category
