# src/llmsentinel/engines/patterns.py
"""
Pattern Detection Engine.

Correlates safety verdicts across requests to spot coordinated attacks:
many events with the same label, inside a short window, whose prompts are
near-duplicates of each other (Jaccard similarity on word sets).

Detection is a side channel: it raises alerts but never changes the
per-event analysis results.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from ..models import SafetyLabel, SafetyResult, TelemetryEvent, utc_now

logger = logging.getLogger(__name__)


class PatternType(str, Enum):
    COORDINATED_JAILBREAK = "COORDINATED_JAILBREAK"
    BRUTE_FORCE_PII = "BRUTE_FORCE_PII"
    PROMPT_INJECTION_CAMPAIGN = "PROMPT_INJECTION_CAMPAIGN"


class PatternDetection(BaseModel):
    """A detected multi-event attack pattern."""

    pattern_type: PatternType
    confidence: float = Field(ge=0.0, le=1.0)
    affected_requests: int
    window_seconds: float
    details: str
    request_ids: List[str]
    first_seen: datetime
    last_seen: datetime

    @property
    def severity(self) -> str:
        return "error" if self.confidence > 0.7 else "warning"


class PatternStatistics(BaseModel):
    total_events: int = 0
    jailbreak_count: int = 0
    pii_count: int = 0
    injection_count: int = 0


@dataclass(frozen=True)
class PatternRule:
    """Thresholds for one pattern type."""

    pattern_type: PatternType
    label: SafetyLabel
    window: timedelta
    min_events: int
    similarity_threshold: float
    confidence_divisor: float
    largest_group: bool
    description: str


PATTERN_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        pattern_type=PatternType.COORDINATED_JAILBREAK,
        label=SafetyLabel.JAILBREAK,
        window=timedelta(minutes=5),
        min_events=5,
        similarity_threshold=0.7,
        confidence_divisor=10,
        largest_group=True,
        description="coordinated jailbreak attempts",
    ),
    PatternRule(
        pattern_type=PatternType.BRUTE_FORCE_PII,
        label=SafetyLabel.PII,
        window=timedelta(minutes=10),
        min_events=10,
        similarity_threshold=0.6,
        confidence_divisor=15,
        largest_group=False,
        description="brute force PII extraction attempts",
    ),
    PatternRule(
        pattern_type=PatternType.PROMPT_INJECTION_CAMPAIGN,
        label=SafetyLabel.PROMPT_INJECTION,
        window=timedelta(minutes=3),
        min_events=8,
        similarity_threshold=0.65,
        confidence_divisor=12,
        largest_group=True,
        description="prompt injection campaign attempts",
    ),
)


@dataclass
class _Record:
    request_id: str
    prompt: str
    label: SafetyLabel
    timestamp: datetime


def jaccard_similarity(text1: str, text2: str) -> float:
    """Jaccard index of the lowercased whitespace-separated word sets."""
    words1 = set(text1.lower().split())
    words2 = set(text2.lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def group_by_similarity(records: List[_Record], threshold: float) -> List[List[_Record]]:
    """
    Greedy single pass: each unassigned record starts a group and pulls in
    every later unassigned record similar to it. Singletons are discarded.
    """
    groups: List[List[_Record]] = []
    assigned = [False] * len(records)
    for i, anchor in enumerate(records):
        if assigned[i]:
            continue
        assigned[i] = True
        group = [anchor]
        for j in range(i + 1, len(records)):
            if not assigned[j] and jaccard_similarity(anchor.prompt, records[j].prompt) >= threshold:
                group.append(records[j])
                assigned[j] = True
        if len(group) > 1:
            groups.append(group)
    return groups


class PatternDetector:
    """
    Sliding window of (event, safety verdict) records.

    Args:
        max_history_size: Records kept (most recent by event time).
        max_history_age_seconds: Records older than this are dropped.
        clock: Returns "now" as an aware datetime. Defaults to wall-clock UTC.
        use_event_time: Measure windows against the newest recorded event
            timestamp instead of the clock (for replaying historical traffic).
    """

    def __init__(
        self,
        max_history_size: int = 5000,
        max_history_age_seconds: float = 3600.0,
        clock: Optional[Callable[[], datetime]] = None,
        use_event_time: bool = False,
        rules: tuple[PatternRule, ...] = PATTERN_RULES,
    ):
        self.max_history_size = max_history_size
        self.max_history_age = timedelta(seconds=max_history_age_seconds)
        self._clock = clock or utc_now
        self._use_event_time = use_event_time
        self._rules = rules
        self._records: List[_Record] = []
        self._lock = threading.Lock()

    def _now(self) -> datetime:
        if self._use_event_time and self._records:
            return max(r.timestamp for r in self._records)
        return self._clock()

    def record_event(self, event: TelemetryEvent, safety: SafetyResult) -> None:
        with self._lock:
            self._records.append(_Record(
                request_id=event.request_id,
                prompt=event.prompt,
                label=safety.safety_label,
                timestamp=event.timestamp,
            ))
            self._clean()

    def _clean(self) -> None:
        cutoff = self._now() - self.max_history_age
        self._records = [r for r in self._records if r.timestamp >= cutoff]
        if len(self._records) > self.max_history_size:
            self._records.sort(key=lambda r: r.timestamp)
            self._records = self._records[-self.max_history_size:]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def detect_patterns(self) -> List[PatternDetection]:
        with self._lock:
            self._clean()
            now = self._now()
            records = list(self._records)

        detections: List[PatternDetection] = []
        for rule in self._rules:
            detection = self._apply_rule(rule, records, now)
            if detection is not None:
                logger.warning(f"Pattern detected: {detection.pattern_type.value} "
                               f"({detection.affected_requests} requests, confidence {detection.confidence:.2f})")
                detections.append(detection)
        return detections

    def _apply_rule(self, rule: PatternRule, records: List[_Record], now: datetime) -> Optional[PatternDetection]:
        window_start = now - rule.window
        candidates = [r for r in records if r.label == rule.label and r.timestamp >= window_start]
        if len(candidates) < rule.min_events:
            return None

        groups = group_by_similarity(candidates, rule.similarity_threshold)
        if not groups:
            return None
        if rule.largest_group:
            # max() keeps the first of equally large groups
            group: Optional[List[_Record]] = max(groups, key=len)
            if len(group) < rule.min_events:
                group = None
        else:
            group = next((g for g in groups if len(g) >= rule.min_events), None)
        if group is None:
            return None

        timestamps = [r.timestamp for r in group]
        window_seconds = rule.window.total_seconds()
        return PatternDetection(
            pattern_type=rule.pattern_type,
            confidence=min(1.0, len(group) / rule.confidence_divisor),
            affected_requests=len(group),
            window_seconds=window_seconds,
            details=(f"Detected {len(group)} {rule.description} with {rule.similarity_threshold * 100:.0f}%+ "
                     f"similarity within {window_seconds:.0f}s window"),
            request_ids=[r.request_id for r in group],
            first_seen=min(timestamps),
            last_seen=max(timestamps),
        )

    def get_statistics(self) -> PatternStatistics:
        widest = max(rule.window for rule in self._rules)
        with self._lock:
            window_start = self._now() - widest
            recent = [r for r in self._records if r.timestamp >= window_start]
        return PatternStatistics(
            total_events=len(recent),
            jailbreak_count=sum(1 for r in recent if r.label == SafetyLabel.JAILBREAK),
            pii_count=sum(1 for r in recent if r.label == SafetyLabel.PII),
            injection_count=sum(1 for r in recent if r.label == SafetyLabel.PROMPT_INJECTION),
        )

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
