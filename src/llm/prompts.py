from __future__ import annotations

import json
from typing import Iterable

from intake_ai.models import PROJECT_TYPES, AnalysisResult, Project, RequestData, TaskSample

CLASSIFY_SYSTEM = (
    "Sen bir yazılım proje kategorilendirme uzmanısın. Proje adı ve task'larına "
    "bakarak projenin türünü belirlersin."
)

ANALYZE_SYSTEM = (
    "Sen bir yazılım proje yöneticisi ve teknik analiz uzmanısın. Müşteri "
    "taleplerini analiz edip ClickUp task'larına dönüştürüyorsun."
)

REFINE_SYSTEM = (
    "Sen bir yazılım proje yöneticisi ve teknik analiz uzmanısın. Kullanıcı "
    "geri bildirimlerine göre analiz sonuçlarını düzenliyorsun."
)

ANALYSIS_FORMAT = """{
  "title": "Kısa ve açıklayıcı başlık",
  "description": "Detaylı açıklama",
  "category": "Frontend/Backend/Database/DevOps/UI-UX",
  "priority": "low/medium/high/urgent",
  "estimated_time": "1-2 gün",
  "technical_requirements": ["Gereksinim 1", "Gereksinim 2"],
  "acceptance_criteria": ["Kriter 1", "Kriter 2"],
  "tags": ["tag1", "tag2"],
  "assignee": "Opsiyonel atanan kişi",
  "due_date": "Opsiyonel tarih (YYYY-MM-DD)"
}"""


def build_classification_prompt(project_name: str, samples: Iterable[TaskSample]) -> str:
    task_lines = []
    for index, sample in enumerate(samples, start=1):
        task_lines.append(
            f"{index}. {sample.name}\n"
            f"   Açıklama: {sample.description}\n"
            f"   Etiketler: {', '.join(sample.tags)}"
        )

    tasks_block = "\n".join(task_lines)
    categories = "\n".join(f"- {label}" for label in PROJECT_TYPES)
    return (
        "Bir yazılım projesinin türünü belirlemek için proje adı ve task'larını analiz et.\n\n"
        f"Proje Adı: {project_name}\n\n"
        "Task'lar:\n"
        f"{tasks_block}\n\n"
        "Kategoriler:\n"
        f"{categories}\n\n"
        "Sadece en uygun kategori adını döndür, başka açıklama yapma."
    )


def build_analysis_prompt(request: RequestData, project: Project) -> str:
    return (
        "Bir müşteri talep yönetim sistemi için analiz yapıyorsun.\n\n"
        "Proje Bilgileri:\n"
        f"- Proje: {project.display_name or project.name}\n"
        f"- Açıklama: {project.description}\n"
        f"- Proje Türü: {project.project_type}\n"
        f"- Teknoloji Stack: {', '.join(project.tech_stack)}\n\n"
        "Müşteri Talebi:\n"
        f"- Metin: {request.text}\n"
        f"- Tip: {request.type}\n"
        f"- Öncelik: {request.priority}\n\n"
        "Talebi analiz et ve yalnızca aşağıdaki JSON formatında yanıtla:\n\n"
        f"{ANALYSIS_FORMAT}\n\n"
        "Türkçe yanıtla ve projenin teknik bağlamına uygun analiz yap."
    )


def build_refine_prompt(analysis: AnalysisResult, feedback: str, project: Project) -> str:
    current = json.dumps(analysis.model_dump(), ensure_ascii=False, indent=2)
    return (
        f"Mevcut analiz:\n{current}\n\n"
        f"Kullanıcı geri bildirimi:\n{feedback}\n\n"
        f"Proje: {project.display_name or project.name}\n"
        f"Teknoloji Stack: {', '.join(project.tech_stack)}\n\n"
        "Analizi geri bildirime göre düzenle ve aynı JSON formatında yanıtla:\n\n"
        f"{ANALYSIS_FORMAT}\n\n"
        "Türkçe yanıtla."
    )
