from __future__ import annotations

from dataclasses import dataclass
import json
from types import SimpleNamespace

import pytest

from arxnotes.config import NotesSettings
from arxnotes.errors import ConfigurationError, ExtractionError
from arxnotes.models import ArxivPaperNote, DocumentSegment
from arxnotes.notes.extractor import NoteExtractor
from arxnotes.notes.prompts import NOTES_TOOL_NAME, NOTES_TOOL_SCHEMA


def _tool_response(arguments: str, *, name: str = NOTES_TOOL_NAME) -> SimpleNamespace:
    call = SimpleNamespace(function=SimpleNamespace(name=name, arguments=arguments))
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=None, tool_calls=[call]))])


def _notes_response(notes: list[dict[str, object]]) -> SimpleNamespace:
    return _tool_response(json.dumps({"notes": notes}))


@dataclass
class _HttpError(Exception):
    status_code: int
    detail: str

    def __str__(self) -> str:
        return self.detail


class _FakeCompletionsAPI:
    def __init__(self, responses: list[object]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, object]] = []

    async def create(self, **kwargs: object) -> object:
        self.calls.append(kwargs)
        if not self._responses:
            raise RuntimeError("No fake response configured")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _FakeClient:
    def __init__(self, responses: list[object]) -> None:
        self.chat = SimpleNamespace(completions=_FakeCompletionsAPI(responses))


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _settings(**overrides: object) -> NotesSettings:
    values: dict[str, object] = {
        "openai_api_key": "sk-test",
        "notes_model": "gpt-4-1106-preview",
        "max_retries": 2,
        "retry_base_seconds": 0.5,
    }
    values.update(overrides)
    return NotesSettings(**values)


SEGMENTS = [
    DocumentSegment(text="Attention Is All You Need", metadata={"page_number": 1}),
    DocumentSegment(text="The Transformer reaches 28.4 BLEU.", metadata={"page_number": 2}),
]


@pytest.mark.asyncio
async def test_extract_forces_notes_tool_with_zero_temperature() -> None:
    client = _FakeClient(
        [
            _notes_response(
                [
                    {"note": "The Transformer relies only on attention.", "pageNumbers": [1]},
                    {"note": "It reaches 28.4 BLEU on WMT 2014 En-De.", "pageNumbers": [2, 1]},
                ]
            )
        ]
    )
    extractor = NoteExtractor(_settings(), client=client)

    notes = await extractor.extract(SEGMENTS, page_count=2)

    assert notes == [
        ArxivPaperNote(note="The Transformer relies only on attention.", page_numbers=(1,)),
        ArxivPaperNote(note="It reaches 28.4 BLEU on WMT 2014 En-De.", page_numbers=(2, 1)),
    ]
    call = client.chat.completions.calls[0]
    assert call["model"] == "gpt-4-1106-preview"
    assert call["temperature"] == 0.0
    assert call["tools"] == [NOTES_TOOL_SCHEMA]
    assert call["tool_choice"] == {"type": "function", "function": {"name": NOTES_TOOL_NAME}}

    messages = call["messages"]
    assert isinstance(messages, list)
    assert messages[0]["role"] == "system"
    assert "page number" in messages[0]["content"]
    assert messages[1]["content"].endswith("Attention Is All You Need\n\nThe Transformer reaches 28.4 BLEU.")


@pytest.mark.asyncio
async def test_schema_violation_is_reprompted_then_accepted() -> None:
    sleep = _RecordingSleep()
    client = _FakeClient(
        [
            _notes_response([{"note": "Missing pages"}]),
            _notes_response([{"note": "Has pages", "pageNumbers": [1]}]),
        ]
    )
    extractor = NoteExtractor(_settings(), client=client, sleep=sleep)

    notes = await extractor.extract(SEGMENTS)

    assert [note.note for note in notes] == ["Has pages"]
    assert sleep.delays == [0.5]
    assert len(client.chat.completions.calls) == 2


@pytest.mark.asyncio
async def test_reprompt_carries_the_validation_error_back_to_the_model() -> None:
    client = _FakeClient(
        [
            _notes_response([{"note": "Missing pages"}]),
            _notes_response([{"note": "Still wrong", "pageNumbers": [9]}]),
            _notes_response([{"note": "Has pages", "pageNumbers": [1]}]),
        ]
    )
    extractor = NoteExtractor(_settings(max_retries=2), client=client, sleep=_RecordingSleep())

    notes = await extractor.extract(SEGMENTS, page_count=2)

    assert [note.note for note in notes] == ["Has pages"]
    first, second, third = (call["messages"] for call in client.chat.completions.calls)
    assert len(first) == 2
    assert second[:2] == first
    assert len(second) == 3
    assert second[-1]["role"] == "user"
    assert "'pageNumbers' must be a non-empty array" in second[-1]["content"]
    # Only the latest rejection is sent.
    assert len(third) == 3
    assert "page number 9 is out of range" in third[-1]["content"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        _tool_response("not json"),
        _tool_response(json.dumps({"items": []})),
        _notes_response([{"note": "", "pageNumbers": [1]}]),
        _notes_response([{"note": "x", "pageNumbers": []}]),
        _notes_response([{"note": "x", "pageNumbers": ["1"]}]),
        _notes_response([{"note": "x", "pageNumbers": [True]}]),
        _notes_response([{"note": "x", "pageNumbers": [3]}]),
        _tool_response(json.dumps({"notes": []}), name="somethingElse"),
        SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="free text", tool_calls=None))]),
        SimpleNamespace(choices=[]),
    ],
)
async def test_repeated_schema_failures_surface_as_extraction_error(response: object) -> None:
    client = _FakeClient([response, response])
    extractor = NoteExtractor(_settings(max_retries=1), client=client, sleep=_RecordingSleep())

    with pytest.raises(ExtractionError, match="after 2 attempt"):
        await extractor.extract(SEGMENTS, page_count=2)

    assert len(client.chat.completions.calls) == 2


@pytest.mark.asyncio
async def test_rate_limits_are_retried_with_backoff() -> None:
    sleep = _RecordingSleep()
    client = _FakeClient(
        [
            _HttpError(status_code=429, detail="rate limited"),
            _HttpError(status_code=503, detail="overloaded"),
            _notes_response([{"note": "ok", "pageNumbers": [1]}]),
        ]
    )
    extractor = NoteExtractor(_settings(), client=client, sleep=sleep)

    notes = await extractor.extract(SEGMENTS)

    assert len(notes) == 1
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_non_retryable_model_error_fails_immediately() -> None:
    sleep = _RecordingSleep()
    client = _FakeClient([_HttpError(status_code=400, detail="context length exceeded")])
    extractor = NoteExtractor(_settings(), client=client, sleep=sleep)

    with pytest.raises(ExtractionError, match="context length exceeded") as excinfo:
        await extractor.extract(SEGMENTS)

    assert excinfo.value.model == "gpt-4-1106-preview"
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_empty_paper_text_is_rejected_without_model_call() -> None:
    client = _FakeClient([])
    extractor = NoteExtractor(_settings(), client=client)

    with pytest.raises(ExtractionError, match="empty"):
        await extractor.extract([DocumentSegment(text="  ")])

    assert client.chat.completions.calls == []


def test_missing_openai_key_raises_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        NoteExtractor(_settings(openai_api_key=""), client=_FakeClient([]))
