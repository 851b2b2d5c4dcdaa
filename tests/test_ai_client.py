import json

import httpx
import pytest

from review360.core.exceptions import ExternalServiceError
from review360.models.enums import Relationship, UserRole
from review360.services import ai as ai_module
from review360.services.ai import (
    ChatCompletionsCollaborator,
    DisabledCollaborator,
    FilePart,
    QuestionDraft,
    parse_json_payload,
    validate_items,
)


def _reply(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _client(handler) -> ChatCompletionsCollaborator:
    return ChatCompletionsCollaborator(
        api_key="test-key",
        base_url="https://ai.example.test/v1",
        model="test-model",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def test_parse_json_payload_handles_fences_and_prose():
    assert parse_json_payload('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_payload('Sure! Here it is: {"a": [1, 2]} Hope that helps.') == {"a": [1, 2]}
    with pytest.raises(ExternalServiceError):
        parse_json_payload("no json here")


def test_validate_items_drops_bad_entries():
    items = validate_items([{"category": "Integrity", "text": "Keeps promises"}, {"category": ""}, "junk"], QuestionDraft)
    assert [d.text for d in items] == ["Keeps promises"]
    assert validate_items({"not": "a list"}, QuestionDraft) == []


@pytest.mark.asyncio
async def test_summarize_sends_request_and_parses_reply():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        content = '```json\n{"summary": "Strong communicator", "strengths": ["Clarity", ""], "improvements": ["Delegation"]}\n```'
        return httpx.Response(200, json=_reply(content))

    summary = await _client(handler).summarize(
        [{"relationship": "PEER", "feedback_strengths": "Clear", "feedback_improvements": "Delegate"}],
        [{"category": "Integrity", "score": 4.5, "self_score": 3, "full_mark": 5}],
        "Zoë",
    )

    assert summary.summary == "Strong communicator"
    assert summary.strengths == ["Clarity"]
    assert summary.improvements == ["Delegation"]
    assert seen["url"] == "https://ai.example.test/v1/chat/completions"
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"]["model"] == "test-model"
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert "Zoë" in seen["body"]["messages"][0]["content"]


@pytest.mark.asyncio
async def test_http_error_falls_back():
    client = _client(lambda request: httpx.Response(500, json={"error": "boom"}))

    summary = await client.summarize([], [], "X")
    assert summary.summary == "AI unavailable"
    assert summary.strengths == [] and summary.improvements == []
    assert await client.suggest_relationships([], "c") == []
    assert await client.draft_questionnaire() == []


@pytest.mark.asyncio
async def test_malformed_reply_falls_back():
    client = _client(lambda request: httpx.Response(200, json=_reply("I cannot help with that.")))
    assert await client.parse_user_list(None, "Alice, Bob") == []

    client = _client(lambda request: httpx.Response(200, json={"unexpected": True}))
    org_chart = await client.parse_org_chart("text", [], "c")
    assert org_chart.new_users == [] and org_chart.assignments == []


@pytest.mark.asyncio
async def test_network_error_falls_back():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    assert await _client(handler).suggest_relationships([{"id": "1"}], "c") == []


@pytest.mark.asyncio
async def test_suggestions_are_validated_item_by_item():
    content = json.dumps({
        "assignments": [
            {"reviewerId": "1", "subjectId": "1", "relationship": "self"},
            {"reviewerId": "1", "subjectId": "2", "relationship": "BOSS"},
            {"reviewerId": "2"},
            {"reviewerId": 2, "subjectId": 1, "relationship": "PEER"},
        ]
    })
    proposals = await _client(lambda r: httpx.Response(200, json=_reply(content))).suggest_relationships([], "c")

    assert [(p.reviewer_id, p.subject_id, p.relationship) for p in proposals] == [
        ("1", "1", Relationship.SELF),
        ("2", "1", Relationship.PEER),
    ]


@pytest.mark.asyncio
async def test_user_list_roles_default_to_employee():
    content = json.dumps({
        "users": [
            {"name": "Ann", "email": "ann@x.test", "role": "manager", "department": "Ops"},
            {"name": "Ben", "role": "Chief Wizard"},
        ]
    })
    users = await _client(lambda r: httpx.Response(200, json=_reply(content))).parse_user_list(None, "roster")

    assert [(u.name, u.role) for u in users] == [("Ann", UserRole.MANAGER), ("Ben", UserRole.EMPLOYEE)]


@pytest.mark.asyncio
async def test_binary_file_is_sent_as_image_part():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_reply(json.dumps({"newUsers": [{"id": 7, "name": "Cy", "managerId": 3}]})))

    pdf = FilePart(filename="chart.pdf", content_type="application/pdf", data=b"%PDF-1.4")
    proposal = await _client(handler).parse_org_chart("", [], "c", pdf)

    parts = seen["body"]["messages"][0]["content"]
    assert parts[0]["type"] == "text"
    assert parts[1]["type"] == "image_url"
    assert parts[1]["image_url"]["url"].startswith("data:application/pdf;base64,")
    assert proposal.new_users[0].id == "7"
    assert proposal.new_users[0].manager_id == "3"


@pytest.mark.asyncio
async def test_text_file_is_inlined_into_prompt():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_reply('{"users": []}'))

    roster = FilePart(filename="people.txt", content_type="text/plain", data="Dana - Sales".encode())
    await _client(handler).parse_user_list(roster, "")

    content = seen["body"]["messages"][0]["content"]
    assert isinstance(content, str)
    assert "Dana - Sales" in content


def test_collaborator_disabled_without_key(monkeypatch):
    monkeypatch.setattr(ai_module.settings, "AI_API_KEY", None)
    ai_module.get_ai_collaborator.cache_clear()
    try:
        assert isinstance(ai_module.get_ai_collaborator(), DisabledCollaborator)
    finally:
        ai_module.get_ai_collaborator.cache_clear()


@pytest.mark.asyncio
async def test_disabled_collaborator_returns_fallbacks():
    ai = DisabledCollaborator()
    assert (await ai.summarize([], [], "X")).summary == "AI unavailable"
    assert await ai.suggest_relationships([], "c") == []
    assert (await ai.parse_org_chart("", [], "c")).new_users == []
    assert await ai.parse_user_list(None, "") == []
    assert await ai.draft_questionnaire() == []


@pytest.mark.asyncio
async def test_summary_lists_must_be_json_lists():
    content = json.dumps({"summary": "Even keel", "strengths": "Calm", "improvements": ["Delegate", 3, "  "]})
    summary = await _client(lambda r: httpx.Response(200, json=_reply(content))).summarize([], [], "X")

    assert summary.summary == "Even keel"
    assert summary.strengths == []
    assert summary.improvements == ["Delegate"]
