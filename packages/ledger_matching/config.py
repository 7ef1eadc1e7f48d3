"""Engine tunables with environment overrides.

Values are read from ``LEDGER_MATCHING_*`` variables by ``EngineSettings.from_env``.
The CLI loads ``.env`` through python-dotenv before calling it; importing this
module never touches the environment.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

_PREFIX = "LEDGER_MATCHING_"


@dataclass(frozen=True, slots=True)
class EngineSettings:
    auto_apply_threshold: float = 0.95
    approval_threshold: float = 0.95
    max_suggestions: int = 10
    min_confidence: float = 0.6
    remote_timeout_sec: float = 240.0
    remote_model: str = "gpt-5"
    analyzer_concurrency: int = 4

    def __post_init__(self) -> None:
        for name in ("auto_apply_threshold", "approval_threshold", "min_confidence"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0,1], got {value}")
        if self.max_suggestions < 1:
            raise ValueError("max_suggestions must be a positive integer")
        if self.analyzer_concurrency < 1:
            raise ValueError("analyzer_concurrency must be a positive integer")
        if self.remote_timeout_sec <= 0:
            raise ValueError("remote_timeout_sec must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineSettings:
        env = os.environ if environ is None else environ

        def _get(name: str) -> str | None:
            raw = env.get(_PREFIX + name.upper())
            return raw.strip() if raw and raw.strip() else None

        kwargs: dict[str, object] = {}
        for name, conv in (
            ("auto_apply_threshold", float),
            ("approval_threshold", float),
            ("max_suggestions", int),
            ("min_confidence", float),
            ("remote_timeout_sec", float),
            ("remote_model", str),
            ("analyzer_concurrency", int),
        ):
            raw = _get(name)
            if raw is None:
                continue
            try:
                kwargs[name] = conv(raw)
            except ValueError as e:
                raise ValueError(f"{_PREFIX}{name.upper()}: invalid value {raw!r}") from e
        return cls(**kwargs)  # type: ignore[arg-type]


__all__ = ["EngineSettings"]
