"""Commit decisions: unconditional and threshold-gated policies."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping, Optional

from .config import Config
from .exceptions import LLMError, RateLimitExceeded, ValidationError
from .llm import LLMClient
from .ratelimit import RateLimiter

logger = logging.getLogger(__name__)


class Significance(str, Enum):
    TRIVIAL = "trivial"
    MINOR = "minor"
    MEDIUM = "medium"
    MAJOR = "major"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SIGNIFICANCE_ORDER.index(self)


_SIGNIFICANCE_ORDER = [
    Significance.TRIVIAL,
    Significance.MINOR,
    Significance.MEDIUM,
    Significance.MAJOR,
    Significance.CRITICAL,
]


class Completeness(str, Enum):
    INCOMPLETE = "incomplete"
    PARTIAL = "partial"
    COMPLETE = "complete"


class ChangeType(str, Enum):
    FEATURE = "feature"
    BUGFIX = "bugfix"
    REFACTOR = "refactor"
    DOCS = "docs"
    TEST = "test"
    STYLE = "style"
    CHORE = "chore"
    PERFORMANCE = "performance"
    CONFIG = "config"
    OTHER = "other"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


THRESHOLD_RANKS = {
    "any": 0,
    "trivial": 0,
    "minor": 1,
    "medium": 2,
    "major": 3,
    "critical": 4,
}

# Loose spellings models (and older configs) use for the same levels.
_SIGNIFICANCE_ALIASES = {
    "none": Significance.TRIVIAL,
    "low": Significance.MINOR,
    "moderate": Significance.MEDIUM,
    "high": Significance.MAJOR,
    "significant": Significance.MAJOR,
}
_CHANGE_TYPE_ALIASES = {
    "feat": ChangeType.FEATURE,
    "fix": ChangeType.BUGFIX,
    "bug": ChangeType.BUGFIX,
    "perf": ChangeType.PERFORMANCE,
    "documentation": ChangeType.DOCS,
    "tests": ChangeType.TEST,
}


def _coerce(enum_cls, value: Any, default, aliases: Optional[Mapping] = None):
    text = str(value or "").strip().lower()
    try:
        return enum_cls(text)
    except ValueError:
        if aliases and text in aliases:
            return aliases[text]
        return default


def _coerce_verdict(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "yes", "1"}


@dataclass(frozen=True)
class CommitDecision:
    should_commit: bool
    message: str
    significance: Significance = Significance.MEDIUM
    completeness: Completeness = Completeness.COMPLETE
    change_type: ChangeType = ChangeType.OTHER
    risk_level: RiskLevel = RiskLevel.LOW
    reason: str = ""

    @classmethod
    def from_analysis(cls, data: Mapping[str, Any]) -> "CommitDecision":
        """Build a provisional decision from a classifier response."""
        return cls(
            should_commit=_coerce_verdict(
                data.get("should_commit", data.get("shouldCommit", False))
            ),
            message=str(data.get("message") or "").strip(),
            significance=_coerce(
                Significance,
                data.get("significance"),
                Significance.MEDIUM,
                _SIGNIFICANCE_ALIASES,
            ),
            completeness=_coerce(
                Completeness, data.get("completeness"), Completeness.PARTIAL
            ),
            change_type=_coerce(
                ChangeType,
                data.get("change_type", data.get("changeType")),
                ChangeType.OTHER,
                _CHANGE_TYPE_ALIASES,
            ),
            risk_level=_coerce(
                RiskLevel,
                data.get("risk_level", data.get("riskLevel")),
                RiskLevel.MEDIUM,
            ),
            reason=str(data.get("reason") or "").strip(),
        )

    def summary(self) -> str:
        return (
            f"{self.significance.value} {self.change_type.value} "
            f"({self.completeness.value}, risk {self.risk_level.value})"
        )


def apply_threshold(
    decision: CommitDecision, threshold: str, require_completeness: bool
) -> CommitDecision:
    """Apply the local significance/completeness override.

    The final verdict is the provisional verdict AND the significance meets
    the threshold rank AND (the change is complete, unless not required).
    A demoted verdict gets the failed conditions appended to its reason.
    """
    failures: list[str] = []
    required_rank = THRESHOLD_RANKS.get(threshold, THRESHOLD_RANKS["medium"])
    if decision.significance.rank < required_rank:
        failures.append(
            f"significance '{decision.significance.value}' is below "
            f"threshold '{threshold}'"
        )
    if require_completeness and decision.completeness is not Completeness.COMPLETE:
        failures.append(
            f"completeness is '{decision.completeness.value}', not 'complete'"
        )

    if not failures:
        return decision
    if not decision.should_commit:
        return decision
    reason = decision.reason or "Commit recommended"
    return replace(
        decision,
        should_commit=False,
        reason=f"{reason} [overridden: {'; '.join(failures)}]",
    )


class DecisionEngine:
    """Turn a diff into a CommitDecision under the configured policy."""

    def __init__(
        self,
        client: LLMClient,
        limiter: RateLimiter,
        config: Config,
    ) -> None:
        self.client = client
        self.limiter = limiter
        self.config = config

    @property
    def threshold_gated(self) -> bool:
        return self.config.intelligent

    def _check_budget(self) -> None:
        if not self.limiter.can_call():
            raise RateLimitExceeded(
                self.limiter.time_until_next_call(),
                limit=self.limiter.max_calls_per_minute,
            )

    async def decide(self, diff: str) -> CommitDecision:
        if not diff or not diff.strip():
            raise ValidationError("Diff content cannot be empty.")
        self._check_budget()
        if not self.threshold_gated:
            message = await asyncio.to_thread(self.client.generate_commit_message, diff)
            self.limiter.record_call()
            return CommitDecision(
                should_commit=True,
                message=message,
                reason="Periodic mode commits every change",
            )

        analysis = await asyncio.to_thread(
            self.client.classify,
            diff,
            self.config.commit_threshold,
            self.config.require_completeness,
        )
        self.limiter.record_call()
        decision = apply_threshold(
            CommitDecision.from_analysis(analysis),
            self.config.commit_threshold,
            self.config.require_completeness,
        )
        if decision.should_commit and not decision.message:
            raise LLMError("Classifier approved the commit but gave no message")
        logger.info(
            "decision should_commit=%s %s", decision.should_commit, decision.summary()
        )
        return decision

    async def generate_message(self, diff: str) -> str:
        """Rate-limited message drafting, used by single-commit mode."""
        if not diff or not diff.strip():
            raise ValidationError("Diff content cannot be empty.")
        self._check_budget()
        message = await asyncio.to_thread(self.client.generate_commit_message, diff)
        self.limiter.record_call()
        return message

    async def suggest(self, error_text: str) -> str:
        """Rate-limited troubleshooting suggestion for the safety wrapper."""
        self._check_budget()
        suggestion = await asyncio.to_thread(self.client.suggest_fix, error_text)
        self.limiter.record_call()
        return suggestion
