"""
Raw job classifier: keyword pre-filter, then an LLM call that returns a strict
JSON verdict which is normalized into a final Job.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.config import ProcessorConfig
from core.models import Job, RawJob, is_truthy

log = logging.getLogger("worker.processor")

OUTCOME_ACCEPTED = "accepted"
OUTCOME_REJECTED = "rejected"

KEYWORD_REJECT_REASON = "missing required keywords"
LLM_REJECT_REASON = "llm rejected"

DEFAULT_PROMPT = (
    "请作为资深 HR，阅读以下招聘文本并输出结构化判断：\n"
    "{{TEXT}}\n"
    "可选岗位标签: {{TAGS}}。需要判断岗位是否为远程，并对岗位进行简要总结与打标签。"
)

JSON_INSTRUCTIONS = (
    "\n请严格输出 JSON，对象字段:"
    '{"is_remote":bool,"summary":string,"verdict":string,"employment_type":string,'
    '"salary_range":string,"role_category":string,"language_requirement":string,'
    '"score":int,"tags":string数组,"skill_tags":string数组}.'
)


class ClassificationError(Exception):
    """The completion answer could not be parsed into a classification."""

    def __init__(self, message: str, trace: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.trace = trace or {}


@dataclass
class ProcessResult:
    outcome: str
    job: Optional[Job] = None
    reason: str = ""
    trace: Dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.outcome == OUTCOME_ACCEPTED and self.job is not None


def strip_code_fence(text: str) -> str:
    """Drop a surrounding ``` or ```json fence some models add around JSON."""
    content = (text or "").strip()
    if content.startswith("```"):
        content = content.strip("`").strip()
        if content.lower().startswith("json"):
            content = content[4:].strip()
    return content


def clamp_score(value: Any) -> int:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(score):
        return 0
    return int(round(max(0.0, min(5.0, score))))


def _str_items(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    return []


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


class Processor:
    def __init__(self, config: Optional[ProcessorConfig] = None, llm=None):
        self.config = config or ProcessorConfig()
        self.llm = llm
        self.tag_lookup: Dict[str, str] = {}
        for tag in self.config.tag_candidates:
            trimmed = tag.strip()
            if trimmed:
                self.tag_lookup[trimmed.lower()] = trimmed

    def contains_keyword(self, text: str) -> bool:
        keywords = [k.strip().lower() for k in self.config.keywords if k and k.strip()]
        if not keywords:
            return True
        lowered = text.lower()
        return any(kw in lowered for kw in keywords)

    def build_prompt(self, text: str) -> str:
        template = self.config.prompt_template.strip() or DEFAULT_PROMPT
        tag_list = ", ".join(self.config.tag_candidates)
        prompt = template.replace("{{TEXT}}", text).replace("{{TAGS}}", tag_list)
        return prompt + JSON_INSTRUCTIONS

    async def process(self, raw: RawJob) -> ProcessResult:
        text = "\n".join([raw.title or "", raw.summary or "", raw.content or ""]).strip()
        if not self.contains_keyword(text):
            return ProcessResult(outcome=OUTCOME_REJECTED, reason=KEYWORD_REJECT_REASON)

        prompt = self.build_prompt(text)
        # completion errors propagate as-is; they are not rejections
        answer = await self.llm.complete(prompt)
        trace = {"prompt": prompt, "llm_response": answer}

        try:
            payload = json.loads(strip_code_fence(answer))
        except json.JSONDecodeError as e:
            raise ClassificationError(f"parse llm response: {e}", trace=trace) from e
        if not isinstance(payload, dict):
            raise ClassificationError("parse llm response: expected a JSON object", trace=trace)

        if not is_truthy(payload.get("is_remote", False)):
            reason = _text(payload.get("verdict")) or LLM_REJECT_REASON
            return ProcessResult(outcome=OUTCOME_REJECTED, reason=reason, trace=trace)

        return ProcessResult(outcome=OUTCOME_ACCEPTED, job=self.build_job(raw, payload), trace=trace)

    def build_job(self, raw: RawJob, payload: Dict[str, Any]) -> Job:
        job_id = raw.external_id or f"{raw.source}-{raw.id}"

        normalized: Dict[str, Any] = {}
        for tag in _str_items(payload.get("tags")):
            canonical = self.tag_lookup.get(tag.strip().lower())
            if canonical:
                normalized[canonical] = True

        skills: Dict[str, Any] = {}
        for tag in _str_items(payload.get("skill_tags")):
            trimmed = tag.strip()
            if trimmed:
                skills[trimmed] = True

        return Job(
            id=job_id,
            title=(raw.title or "").strip(),
            summary=_text(payload.get("summary")) or raw.summary,
            published_at=raw.published_at,
            source=raw.source,
            url=raw.url,
            tags=dict(raw.tags or {}),
            raw_attributes=dict(raw.raw_payload or {}),
            normalized_tags=normalized,
            skill_tags=skills,
            employment_type=_text(payload.get("employment_type")),
            salary_range=_text(payload.get("salary_range")),
            role_category=_text(payload.get("role_category")),
            language_requirement=_text(payload.get("language_requirement")),
            score=clamp_score(payload.get("score")),
            verdict=_text(payload.get("verdict")),
        )


__all__ = [
    "OUTCOME_ACCEPTED",
    "OUTCOME_REJECTED",
    "KEYWORD_REJECT_REASON",
    "LLM_REJECT_REASON",
    "ClassificationError",
    "ProcessResult",
    "Processor",
    "strip_code_fence",
    "clamp_score",
]
