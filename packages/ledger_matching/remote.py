"""Remote categorization capability and its strict response contract.

The engine talks to a remote model through ``RemoteCategorizer``: anything
with a ``categorize(transactions, categories, *, cancel)`` method returning the
raw JSON text. ``OpenAIRemoteCategorizer`` implements it with the OpenAI
Responses API; tests inject stubs.

Everything the provider returns is validated here before the engine trusts
it. A payload that does not decode, or that violates the schema (for example
a transaction with other than three suggestions), fails the whole call. Ids
outside the requested set are logged and dropped. ``categorize_with_timeout``
bounds the call, honours an external cancel token, and always returns a
``RemoteCategorizationResult``; it never raises.

Public API
----------
- ``RemoteCategorizer`` (Protocol), ``OpenAIRemoteCategorizer``
- ``RemoteSuggestion``, ``RemoteCategorization``, ``RemoteSummary``,
  ``RemoteCategorizationResult``
- ``build_request_items``, ``parse_remote_response``, ``summarize``
- ``categorize_with_timeout``, ``RemoteCategorizationFailed``
"""

from __future__ import annotations

import json
import random
import threading
import time
from collections.abc import Collection, Sequence
from typing import Any, Protocol

from openai import OpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import LedgerMatchingError, RemoteResponseError
from .logging_setup import get_logger
from .models import Category, Transaction

_logger = get_logger("ledger_matching.remote")

SUGGESTIONS_PER_TRANSACTION = 3
HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.6
DEFAULT_TIMEOUT_SEC = 240.0

_MAX_ATTEMPTS = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT = 0.20
_POLL_SEC = 0.05


class RemoteCategorizationFailed(LedgerMatchingError):
    """Raised by the remote analyzer when the provider call did not succeed."""


# ---- Response contract --------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )


class RemoteSuggestion(_CamelModel):
    category_id: int
    category_name: str = ""
    confidence: float
    reasoning: str = ""

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_interval(cls, v: float) -> float:
        if 0.0 <= v <= 1.0:
            return v
        raise ValueError("confidence must be within [0,1]")


class RemoteCategorization(_CamelModel):
    transaction_id: int
    suggestions: list[RemoteSuggestion]
    recommended_category_id: int | None = None
    requires_review: bool = False

    @field_validator("suggestions")
    @classmethod
    def _exactly_three(cls, v: list[RemoteSuggestion]) -> list[RemoteSuggestion]:
        if len(v) != SUGGESTIONS_PER_TRANSACTION:
            raise ValueError(
                f"expected exactly {SUGGESTIONS_PER_TRANSACTION} suggestions, got {len(v)}"
            )
        return sorted(v, key=lambda s: s.confidence, reverse=True)

    @property
    def top_confidence(self) -> float:
        return max(s.confidence for s in self.suggestions)

    def recommended(self) -> RemoteSuggestion | None:
        if self.recommended_category_id is not None:
            for s in self.suggestions:
                if s.category_id == self.recommended_category_id:
                    return s
        return self.suggestions[0] if self.suggestions else None


class RemoteSummary(_CamelModel):
    total_processed: int = 0
    high_confidence: int = 0
    medium_confidence: int = 0
    low_confidence: int = 0
    average_confidence: float = 0.0


class _RemotePayload(_CamelModel):
    categorizations: list[RemoteCategorization]
    summary: RemoteSummary | None = None


class RemoteCategorizationResult(_CamelModel):
    success: bool
    categorizations: list[RemoteCategorization] = Field(default_factory=list)
    summary: RemoteSummary = Field(default_factory=RemoteSummary)
    errors: list[str] = Field(default_factory=list)
    unknown_transaction_ids: list[int] = Field(default_factory=list)

    @classmethod
    def failure(cls, message: str) -> RemoteCategorizationResult:
        return cls(success=False, errors=[message])


# ---- Capability -------------------------------------------------------------


class RemoteCategorizer(Protocol):
    def categorize(
        self,
        transactions: Sequence[Transaction],
        categories: Sequence[Category],
        *,
        cancel: threading.Event,
    ) -> str: ...


def build_request_items(transactions: Sequence[Transaction]) -> list[dict[str, Any]]:
    return [
        {
            "id": t.id,
            "amount": float(t.amount),
            "description": t.description,
            "date": t.date.isoformat(),
            "account": t.account_name,
            "currency": t.currency,
        }
        for t in transactions
    ]


def _strip_code_fences(text: str) -> str:
    s = text.strip()
    if s.startswith("```"):
        s = s[3:]
        if s[:4].lower() == "json":
            s = s[4:]
        if s.rstrip().endswith("```"):
            s = s.rstrip()[:-3]
    return s.strip()


def summarize(categorizations: Sequence[RemoteCategorization]) -> RemoteSummary:
    """Bucket by top confidence: high >= 0.8, medium >= 0.6, low otherwise."""

    tops = [c.top_confidence for c in categorizations]
    return RemoteSummary(
        total_processed=len(tops),
        high_confidence=sum(1 for x in tops if x >= HIGH_CONFIDENCE),
        medium_confidence=sum(1 for x in tops if MEDIUM_CONFIDENCE <= x < HIGH_CONFIDENCE),
        low_confidence=sum(1 for x in tops if x < MEDIUM_CONFIDENCE),
        average_confidence=(sum(tops) / len(tops)) if tops else 0.0,
    )


def parse_remote_response(
    text: str, requested_ids: Collection[int]
) -> RemoteCategorizationResult:
    """Validate provider output against the contract.

    Raises ``RemoteResponseError`` when the text is not JSON or fails schema
    validation; unknown transaction ids are logged and excluded.
    """

    if not isinstance(text, str) or not text.strip():
        raise RemoteResponseError("remote response is empty")
    try:
        decoded = json.loads(_strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise RemoteResponseError(f"remote response is not valid JSON: {e.msg}") from e
    if not isinstance(decoded, dict):
        raise RemoteResponseError("remote response must be a JSON object")
    try:
        payload = _RemotePayload.model_validate(decoded)
    except ValidationError as e:
        raise RemoteResponseError(
            f"remote response failed validation ({e.error_count()} errors)"
        ) from e

    wanted = set(requested_ids)
    known: list[RemoteCategorization] = []
    unknown: list[int] = []
    for c in payload.categorizations:
        if c.transaction_id in wanted:
            known.append(c)
        else:
            unknown.append(c.transaction_id)
    if unknown:
        _logger.warning(
            "parse_remote_response:unknown_ids count=%d ids=%s",
            len(unknown),
            ",".join(str(i) for i in unknown),
        )

    summary = payload.summary if payload.summary is not None and not unknown else summarize(known)
    return RemoteCategorizationResult(
        success=True,
        categorizations=known,
        summary=summary,
        unknown_transaction_ids=unknown,
    )


def categorize_with_timeout(
    categorizer: RemoteCategorizer,
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    *,
    timeout_sec: float = DEFAULT_TIMEOUT_SEC,
    cancel: threading.Event | None = None,
) -> RemoteCategorizationResult:
    """Invoke ``categorizer`` on a worker thread and wait at most ``timeout_sec``.

    On timeout or external cancellation the worker's cancel token is set and a
    failure result is returned immediately; the worker is left to wind down on
    its own.
    """

    if not transactions:
        return RemoteCategorizationResult(success=True)

    token = threading.Event()
    done = threading.Event()
    box: dict[str, Any] = {}

    def _work() -> None:
        try:
            box["text"] = categorizer.categorize(transactions, categories, cancel=token)
        except Exception as e:  # noqa: BLE001
            box["error"] = e
        finally:
            done.set()

    t0 = time.perf_counter()
    threading.Thread(target=_work, name="remote-categorize", daemon=True).start()
    deadline = t0 + timeout_sec
    while not done.wait(_POLL_SEC):
        if cancel is not None and cancel.is_set():
            token.set()
            _logger.warning("categorize_with_timeout:cancelled count=%d", len(transactions))
            return RemoteCategorizationResult.failure("Remote categorization was cancelled")
        if time.perf_counter() >= deadline:
            token.set()
            _logger.error(
                "categorize_with_timeout:timeout count=%d timeout_sec=%.1f",
                len(transactions),
                timeout_sec,
            )
            return RemoteCategorizationResult.failure(
                f"Remote categorization timed out after {timeout_sec:g}s"
            )

    dt_ms = (time.perf_counter() - t0) * 1000.0
    if "error" in box:
        err = box["error"]
        _logger.error(
            "categorize_with_timeout:provider_failed latency_ms=%.2f error=%s",
            dt_ms,
            err.__class__.__name__,
        )
        return RemoteCategorizationResult.failure(
            f"Remote categorization failed: {err.__class__.__name__}"
        )
    try:
        result = parse_remote_response(box["text"], [t.id for t in transactions])
    except RemoteResponseError as e:
        _logger.error("categorize_with_timeout:malformed latency_ms=%.2f error=%s", dt_ms, e)
        return RemoteCategorizationResult.failure(f"Malformed remote response: {e}")
    _logger.info(
        "categorize_with_timeout:done count=%d high=%d medium=%d low=%d latency_ms=%.2f",
        result.summary.total_processed,
        result.summary.high_confidence,
        result.summary.medium_confidence,
        result.summary.low_confidence,
        dt_ms,
    )
    return result


# ---- OpenAI provider --------------------------------------------------------

_INSTRUCTIONS = """\
You categorize personal-finance transactions.
For every transaction in the input, return exactly three category suggestions
chosen from the provided categories, ordered by confidence (0.0-1.0), each with
a one-sentence reasoning. Respond with JSON only, shaped as:
{"categorizations": [{"transactionId": <int>, "suggestions": [{"categoryId": <int>,
"categoryName": <str>, "confidence": <float>, "reasoning": <str>}],
"recommendedCategoryId": <int>, "requiresReview": <bool>}],
"summary": {"totalProcessed": <int>, "highConfidence": <int>,
"mediumConfidence": <int>, "lowConfidence": <int>, "averageConfidence": <float>}}
"""


def _is_retryable(exc: BaseException) -> bool:
    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _backoff_delay(attempt_no: int) -> float:
    base = _BACKOFF_SCHEDULE_SEC[min(attempt_no - 1, len(_BACKOFF_SCHEDULE_SEC) - 1)]
    jitter = base * _JITTER_PCT
    return max(0.0, base + random.uniform(-jitter, jitter))


def _response_text(resp: Any) -> str:
    text = getattr(resp, "output_text", None)
    if isinstance(text, str) and text:
        return text
    try:
        content = resp.output[0].content
        txt = content[0].text
    except (AttributeError, IndexError, TypeError) as e:
        raise RemoteResponseError("unable to locate text output in provider response") from e
    return txt if isinstance(txt, str) else str(getattr(txt, "value", ""))


class OpenAIRemoteCategorizer:
    """``RemoteCategorizer`` backed by the OpenAI Responses API.

    Retries only HTTP 429/5xx, up to three attempts, and stops early when the
    cancel token is set.
    """

    def __init__(self, *, model: str = "gpt-5", client: OpenAI | None = None) -> None:
        self._model = model
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def categorize(
        self,
        transactions: Sequence[Transaction],
        categories: Sequence[Category],
        *,
        cancel: threading.Event,
    ) -> str:
        user_content = json.dumps(
            {
                "categories": [
                    {"id": c.id, "name": c.name, "parentId": c.parent_id} for c in categories
                ],
                "transactions": build_request_items(transactions),
            },
            ensure_ascii=False,
        )
        client = self._get_client()
        attempt = 1
        while True:
            if cancel.is_set():
                raise TimeoutError("remote categorization cancelled before completion")
            try:
                resp = client.responses.create(
                    model=self._model,
                    instructions=_INSTRUCTIONS,
                    input=user_content,
                )
                return _response_text(resp)
            except Exception as e:  # noqa: BLE001
                if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                    raise
                _logger.warning(
                    "openai_categorize:retry attempt=%d error=%s",
                    attempt,
                    e.__class__.__name__,
                )
                if cancel.wait(_backoff_delay(attempt)):
                    raise TimeoutError("remote categorization cancelled during backoff") from e
                attempt += 1


__all__ = [
    "RemoteCategorizer",
    "OpenAIRemoteCategorizer",
    "RemoteSuggestion",
    "RemoteCategorization",
    "RemoteSummary",
    "RemoteCategorizationResult",
    "RemoteCategorizationFailed",
    "build_request_items",
    "parse_remote_response",
    "summarize",
    "categorize_with_timeout",
]
