from __future__ import annotations
import json
from typing import Optional

from llm.providers.base import LLMProvider

class MockProvider(LLMProvider):
    def generate(
        self,
        *,
        system: str,
        user: str,
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Returns canned responses based on the prompt content (local development without an API key).
        """
        # Project type classification: reply with a single label
        if "Kategoriler:" in user:
            lower_user = user.lower()
            if "sepet" in lower_user or "ödeme" in lower_user or "ürün" in lower_user:
                return "E-ticaret"
            if "ios" in lower_user or "android" in lower_user:
                return "Mobil Uygulama"
            if "endpoint" in lower_user or "api" in lower_user:
                return "API/Backend"
            return "Web Uygulaması"

        # Request analysis / refinement: reply with the analysis JSON
        if "Müşteri Talebi" in user or "Kullanıcı geri bildirimi" in user:
            return json.dumps({
                "title": "Giriş sayfası hatasının düzeltilmesi",
                "description": "Kullanıcılar giriş yaparken hata alıyor.",
                "category": "Frontend",
                "priority": "high",
                "estimated_time": "1-2 gün",
                "technical_requirements": ["Form doğrulamasını düzelt"],
                "acceptance_criteria": ["Kullanıcı hatasız giriş yapabilmeli"],
                "tags": ["bug", "login"],
                "assignee": None,
                "due_date": None,
            }, ensure_ascii=False)

        # Default fallback
        return "{}"
