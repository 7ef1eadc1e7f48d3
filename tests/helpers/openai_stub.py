"""Test helpers to stub the OpenAI Responses client used by ``OpenAIRemoteCategorizer``.

The stub decodes the JSON user content (``{"categories": [...],
"transactions": [...]}``) and answers with the camelCase categorization
payload. Tests provide a ``decide`` callable mapping each transaction item to
three ``(category_id, confidence, reasoning)`` tuples so the test surface stays
small and focused on inputs/outputs.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, TypeAlias

Decision: TypeAlias = tuple[int, float, str]


class OpenAIStub:
    """Minimal stub matching the ``openai.OpenAI`` shape used by the remote categorizer.

    Parameters
    ----------
    decide:
        Receives one transaction item (``id``, ``amount``, ``description`` ...)
        and returns the three suggestions for it.
    failures:
        Exceptions raised by the first calls, in order, before answering
        normally. Used to exercise retry handling.
    """

    def __init__(
        self,
        decide: Callable[[dict[str, Any]], list[Decision]],
        *,
        failures: list[BaseException] | None = None,
        include_summary: bool = False,
    ) -> None:
        self._decide = decide
        self._failures = list(failures or [])
        self._include_summary = include_summary
        self.calls: list[dict[str, Any]] = []

        outer = self

        class _Responses:
            def create(self, **kwargs: Any) -> Any:
                outer.calls.append(kwargs)
                if outer._failures:
                    raise outer._failures.pop(0)
                return outer._respond(kwargs["input"])

        self.responses = _Responses()

    def _respond(self, user_content: str) -> Any:
        payload = json.loads(user_content)
        names = {c["id"]: c["name"] for c in payload["categories"]}
        categorizations = []
        for item in payload["transactions"]:
            decisions = self._decide(item)
            categorizations.append(
                {
                    "transactionId": item["id"],
                    "suggestions": [
                        {
                            "categoryId": cid,
                            "categoryName": names.get(cid, ""),
                            "confidence": conf,
                            "reasoning": why,
                        }
                        for cid, conf, why in decisions
                    ],
                    "recommendedCategoryId": max(decisions, key=lambda d: d[1])[0],
                    "requiresReview": max(d[1] for d in decisions) < 0.8,
                }
            )
        body: dict[str, Any] = {"categorizations": categorizations}
        if self._include_summary:
            body["summary"] = {
                "totalProcessed": len(categorizations),
                "highConfidence": 0,
                "mediumConfidence": 0,
                "lowConfidence": len(categorizations),
                "averageConfidence": 0.0,
            }

        class _Resp:
            output_text: str

        resp = _Resp()
        resp.output_text = json.dumps(body)
        return resp


class StatusError(Exception):
    """Exception carrying an HTTP ``status_code`` like the OpenAI SDK's errors."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
