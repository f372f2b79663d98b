import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from intake_ai.models import AnalysisResult, Project, RequestData
from llm.llm_client import LLMClient, LLMResponseError, LLMUnavailableError
from llm.prompts import ANALYZE_SYSTEM, REFINE_SYSTEM, build_analysis_prompt, build_refine_prompt

logger = logging.getLogger(__name__)


class RequestAnalysisError(Exception):
    """User-facing failure of an analysis or refinement call."""


def _describe_http_error(e: httpx.HTTPStatusError) -> str:
    status = e.response.status_code
    body = e.response.text or ""
    if status == 401:
        return "API anahtarı geçersiz. Lütfen yapılandırmayı kontrol edin."
    if "insufficient_quota" in body:
        return "API kotası aşıldı. Lütfen daha sonra tekrar deneyin."
    if status == 429 or "rate_limit" in body:
        return "Çok fazla istek gönderildi. Lütfen bekleyip tekrar deneyin."
    return "AI analiz yapılamadı. Lütfen tekrar deneyin."


class RequestAnalyzer:
    """Turns a customer request into a structured work item and refines it on feedback."""

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm = llm_client or LLMClient()

    def _run(self, prompt: str, system: str, failure_message: str) -> AnalysisResult:
        try:
            data = self.llm.complete_json(prompt, system=system, temperature=0.7, max_tokens=1000)
        except LLMUnavailableError as e:
            logger.error(f"LLM provider unavailable: {e}")
            raise RequestAnalysisError("AI yapılandırması eksik. Lütfen sistem yöneticisi ile iletişime geçin.") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"LLM call failed: {e}")
            raise RequestAnalysisError(_describe_http_error(e)) from e
        except httpx.HTTPError as e:
            logger.error(f"LLM call failed: {e}")
            raise RequestAnalysisError(failure_message) from e
        except LLMResponseError as e:
            logger.error(f"Unusable LLM output: {e}")
            raise RequestAnalysisError(failure_message) from e

        try:
            return AnalysisResult.model_validate(data)
        except ValidationError as e:
            logger.error(f"LLM output failed validation: {e}")
            raise RequestAnalysisError(failure_message) from e

    def analyze(self, request: RequestData, project: Project) -> AnalysisResult:
        return self._run(
            build_analysis_prompt(request, project),
            ANALYZE_SYSTEM,
            "AI analiz yapılamadı. Lütfen tekrar deneyin.",
        )

    def refine(self, analysis: AnalysisResult, feedback: str, project: Project) -> AnalysisResult:
        return self._run(
            build_refine_prompt(analysis, feedback, project),
            REFINE_SYSTEM,
            "AI analiz düzenlemesi yapılamadı. Lütfen tekrar deneyin.",
        )
