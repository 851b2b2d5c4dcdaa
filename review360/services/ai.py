"""
Generative-AI collaborator.

The engine talks to the AI service only through ``AICollaborator``. Every public
method is a one-shot request/response task that never raises: any failure
(network, HTTP status, timeout, malformed JSON, items that do not validate)
degrades to the documented empty/default value. ``DisabledCollaborator`` is used
when no API key is configured and answers every call with that fallback.

``run_ai_task`` adds an outer deadline so a collaborator that never returns
cannot hold up the caller either.
"""
from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Awaitable, TypeVar

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from review360.core.config import settings
from review360.core.exceptions import ExternalServiceError, ValidationError
from review360.models.enums import Relationship, UserRole

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUMMARY_UNAVAILABLE = "AI unavailable"
SUMMARY_EMPTY = "No summary could be generated."

TEXT_MIME_PREFIXES = ("text/",)
TEXT_EXTENSIONS = (".csv", ".txt", ".tsv", ".md")


# ---- response shapes ----

class FeedbackSummary(BaseModel):
    summary: str
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


def fallback_summary() -> FeedbackSummary:
    return FeedbackSummary(summary=SUMMARY_UNAVAILABLE, strengths=[], improvements=[])


class ProposedAssignment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reviewer_id: str = Field(validation_alias=AliasChoices("reviewer_id", "reviewerId"))
    subject_id: str = Field(validation_alias=AliasChoices("subject_id", "subjectId"))
    relationship: Relationship

    @field_validator("relationship", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("reviewer_id", "subject_id", mode="before")
    @classmethod
    def _stringify(cls, v):
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v


class ProposedUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    name: str | None = None
    email: str | None = None
    role: UserRole = UserRole.EMPLOYEE
    department: str | None = None
    manager_id: str | None = Field(default=None, validation_alias=AliasChoices("manager_id", "managerId"))

    @field_validator("role", mode="before")
    @classmethod
    def _role_or_employee(cls, v):
        if isinstance(v, str) and v.strip().upper() in UserRole.__members__:
            return v.strip().upper()
        return UserRole.EMPLOYEE

    @field_validator("id", "manager_id", mode="before")
    @classmethod
    def _stringify(cls, v):
        return None if v in (None, "") else str(v)


class OrgChartProposal(BaseModel):
    new_users: list[ProposedUser] = Field(default_factory=list)
    assignments: list[ProposedAssignment] = Field(default_factory=list)


class QuestionDraft(BaseModel):
    category: str = Field(min_length=1)
    text: str = Field(min_length=1)


@dataclass
class FilePart:
    filename: str
    content_type: str | None
    data: bytes

    @property
    def is_text(self) -> bool:
        ctype = (self.content_type or "").lower()
        return ctype.startswith(TEXT_MIME_PREFIXES) or self.filename.lower().endswith(TEXT_EXTENSIONS)

    def text(self) -> str:
        return self.data.decode("utf-8-sig", errors="replace")

    def check_size(self, limit: int | None = None) -> None:
        limit = limit or settings.AI_MAX_UPLOAD_BYTES
        if len(self.data) > limit:
            raise ValidationError(
                f"File is too large (limit {limit} bytes)",
                details=[{"field": "file", "code": "too_large"}],
            )

    def data_url(self) -> str:
        ctype = self.content_type
        if not ctype or ctype == "application/octet-stream":
            ctype = "application/pdf"
        return f"data:{ctype};base64,{base64.b64encode(self.data).decode('ascii')}"


# ---- collaborator interface ----

class AICollaborator:
    """Fallback-only implementation; also the interface real collaborators override."""

    async def summarize(self, reviews: list[dict], questions: list[dict], subject_name: str) -> FeedbackSummary:
        return fallback_summary()

    async def suggest_relationships(self, users: list[dict], cycle_id: str) -> list[ProposedAssignment]:
        return []

    async def parse_org_chart(
        self, text: str, existing_users: list[dict], cycle_id: str, file: FilePart | None = None
    ) -> OrgChartProposal:
        return OrgChartProposal()

    async def parse_user_list(self, file: FilePart | None, text: str) -> list[ProposedUser]:
        return []

    async def draft_questionnaire(self) -> list[QuestionDraft]:
        return []


class DisabledCollaborator(AICollaborator):
    pass


def _strip_fences(text: str | None) -> str:
    if not text:
        return ""
    cleaned = text.strip()
    if "```" in cleaned:
        cleaned = re.sub(r"```(?:json)?", "", cleaned)
    return cleaned.strip()


def parse_json_payload(text: str | None) -> Any:
    """Model output to JSON; tolerates code fences and prose around a single object."""
    cleaned = _strip_fences(text)
    try:
        return json.loads(cleaned)
    except ValueError:
        match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if not match:
            raise ExternalServiceError("AI response was not JSON")
        try:
            return json.loads(match.group())
        except ValueError:
            raise ExternalServiceError("AI response was not JSON")


def validate_items(raw: Any, model: type[BaseModel]) -> list:
    """Validate list items one by one, dropping the ones that do not fit."""
    if not isinstance(raw, list):
        return []
    out = []
    for item in raw:
        try:
            out.append(model.model_validate(item))
        except PydanticValidationError:
            logger.debug("Dropping malformed %s from AI output: %r", model.__name__, item)
    return out


def _string_list(raw: Any) -> list[str]:
    """Non-blank strings of a JSON list; anything that is not a list counts as empty."""
    if not isinstance(raw, list):
        return []
    return [s.strip() for s in raw if isinstance(s, str) and s.strip()]


class ChatCompletionsCollaborator(AICollaborator):
    """OpenAI-compatible chat-completions client (OpenRouter by default)."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self.transport = transport

    async def _complete(self, prompt: str, file: FilePart | None = None) -> str:
        if file is not None and not file.is_text:
            content: Any = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": file.data_url()}},
            ]
        else:
            if file is not None:
                prompt = f"{prompt}\n\n[Attached file content]:\n{file.text()}"
            content = prompt

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "temperature": 0.4,
            "response_format": {"type": "json_object"},
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        logger.info("Calling AI model %s", self.model)
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post("/chat/completions", json=payload, headers=headers)
                response.raise_for_status()
            except httpx.TimeoutException:
                raise ExternalServiceError("AI service timed out")
            except httpx.HTTPStatusError as e:
                raise ExternalServiceError(f"AI service returned HTTP {e.response.status_code}")
            except httpx.HTTPError as e:
                raise ExternalServiceError(f"AI service unreachable: {e}")

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError, ValueError):
            raise ExternalServiceError("Malformed AI service response")

    async def _complete_json(self, prompt: str, file: FilePart | None = None) -> dict:
        data = parse_json_payload(await self._complete(prompt, file))
        if not isinstance(data, dict):
            raise ExternalServiceError("AI response was not a JSON object")
        return data

    async def summarize(self, reviews: list[dict], questions: list[dict], subject_name: str) -> FeedbackSummary:
        feedback = "\n---\n".join(
            f"Relationship: {r.get('relationship')}\n"
            f"Strengths: {r.get('feedback_strengths', '')}\n"
            f"Improvements: {r.get('feedback_improvements', '')}"
            for r in reviews
        )
        prompt = (
            "You are a senior HR performance specialist. Analyze the 360-degree review data "
            f'for employee "{subject_name}".\n\n'
            f"Category scores (others vs self): {json.dumps(questions, ensure_ascii=False)}\n\n"
            f"Raw feedback:\n{feedback}\n\n"
            "Respond with a JSON object:\n"
            '{"summary": "about 100 words, focus on gaps between self and others", '
            '"strengths": ["3 key strengths"], "improvements": ["3 concrete suggestions"]}\n'
            "Keep the tone objective and constructive."
        )
        try:
            data = await self._complete_json(prompt)
            return FeedbackSummary(
                summary=str(data.get("summary") or "").strip() or SUMMARY_EMPTY,
                strengths=_string_list(data.get("strengths")),
                improvements=_string_list(data.get("improvements")),
            )
        except Exception as e:
            logger.warning("AI summarize failed, using fallback: %s", e)
            return fallback_summary()

    async def suggest_relationships(self, users: list[dict], cycle_id: str) -> list[ProposedAssignment]:
        prompt = (
            "Build a 360-degree review plan from this employee list and org structure.\n\n"
            f"Employees:\n{json.dumps(users, ensure_ascii=False, indent=2)}\n\n"
            "Rules:\n"
            "1. SELF: everyone reviews themselves.\n"
            "2. MANAGER: the direct manager (managerId) reviews each report.\n"
            "3. DIRECT_REPORT: each report reviews their direct manager.\n"
            "4. PEER: colleagues in the same department review each other (at least 2 peers per person).\n\n"
            'Respond with a JSON object: {"assignments": [{"reviewerId": "...", "subjectId": "...", '
            '"relationship": "SELF|MANAGER|DIRECT_REPORT|PEER"}]}'
        )
        try:
            data = await self._complete_json(prompt)
            return validate_items(data.get("assignments"), ProposedAssignment)
        except Exception as e:
            logger.warning("AI relationship suggestion failed, using fallback: %s", e)
            return []

    async def parse_org_chart(
        self, text: str, existing_users: list[dict], cycle_id: str, file: FilePart | None = None
    ) -> OrgChartProposal:
        prompt = (
            "You are an HR assistant. Parse the provided org chart or roster, identify ALL employees "
            "and generate 360-degree review plans.\n\n"
            f"Current system users (reuse their ids when a person matches): {json.dumps(existing_users, ensure_ascii=False)}\n\n"
            f'Additional content: "{text}"\n\n'
            "Task:\n"
            "1. People: extract names. Reuse existing ids when found, otherwise create new entries "
            "with a temporary id and infer role, department and managerId.\n"
            "2. Assignments: SELF (everyone), MANAGER (manager reviews report), DIRECT_REPORT "
            "(report reviews manager), PEER (same team).\n\n"
            "Respond with a JSON object:\n"
            '{"newUsers": [{"id": "...", "name": "...", "role": "MANAGER|EMPLOYEE", "department": "...", "managerId": "..."}], '
            '"assignments": [{"reviewerId": "...", "subjectId": "...", "relationship": "SELF|MANAGER|DIRECT_REPORT|PEER"}]}'
        )
        try:
            data = await self._complete_json(prompt, file)
            return OrgChartProposal(
                new_users=validate_items(data.get("newUsers", data.get("new_users")), ProposedUser),
                assignments=validate_items(data.get("assignments"), ProposedAssignment),
            )
        except Exception as e:
            logger.warning("AI org chart parsing failed, using fallback: %s", e)
            return OrgChartProposal()

    async def parse_user_list(self, file: FilePart | None, text: str) -> list[ProposedUser]:
        prompt = (
            "Parse the following file or text content and extract the list of employees.\n\n"
            f'Input text: "{text}"\n\n'
            'Respond with a JSON object: {"users": [{"name": "...", "email": "...", '
            '"role": "ADMIN|MANAGER|EMPLOYEE", "department": "..."}]}\n'
            "Default role to EMPLOYEE."
        )
        try:
            data = await self._complete_json(prompt, file)
            return validate_items(data.get("users"), ProposedUser)
        except Exception as e:
            logger.warning("AI user list parsing failed, using fallback: %s", e)
            return []

    async def draft_questionnaire(self) -> list[QuestionDraft]:
        prompt = (
            "Design a 360-degree review questionnaire based on a leadership competency model.\n\n"
            "Rules:\n"
            "1. Use declarative statements.\n"
            "2. Describe behaviour directly, in the third person, without pronouns.\n"
            "3. One behaviour per question.\n"
            "4. Phrase every question positively.\n"
            "5. Behaviours must be specific, observable and measurable.\n\n"
            "Cover these categories: Integrity, Learning & Innovation, Strategic Thinking, "
            "Organizational Optimization, Talent Development.\n"
            "Write 10-15 questions.\n\n"
            'Respond with a JSON object: {"questions": [{"text": "...", "category": "..."}]}'
        )
        try:
            data = await self._complete_json(prompt)
            return validate_items(data.get("questions"), QuestionDraft)
        except Exception as e:
            logger.warning("AI questionnaire draft failed, using fallback: %s", e)
            return []


async def run_ai_task(awaitable: Awaitable[T], *, fallback: T, label: str, timeout: float | None = None) -> T:
    """
    Await one collaborator call under a deadline. Timeouts and unexpected errors
    become ``fallback``; cancellation by the caller still propagates.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout or settings.AI_TIMEOUT_SECONDS)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning("AI task %s fell back: %r", label, e)
        return fallback


@lru_cache
def get_ai_collaborator() -> AICollaborator:
    if not settings.ai_enabled:
        logger.info("AI_API_KEY not set; AI features answer with fallbacks")
        return DisabledCollaborator()
    return ChatCompletionsCollaborator(
        api_key=settings.AI_API_KEY,
        base_url=settings.AI_BASE_URL,
        model=settings.AI_MODEL,
        timeout=settings.AI_TIMEOUT_SECONDS,
    )
