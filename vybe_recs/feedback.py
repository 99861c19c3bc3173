"""
Listener Feedback
=================

Typed feedback events and the boundary that decodes persistence records into
them. History is append-only; the core only ever reads it.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from .config import DEFAULT_PERSONALIZATION_CONFIG
from .features import AudioFeatureVector
from .utils import finite_or

logger = logging.getLogger(__name__)

UPVOTE = 1
SKIP = 0
DOWNVOTE = -1

FEEDBACK_TYPE_SCORES: Dict[str, int] = {
    "upvote": UPVOTE,
    "skip": SKIP,
    "downvote": DOWNVOTE,
}


@dataclass(frozen=True)
class FeedbackEvent:
    """One reaction of a listener to a recommended track."""
    track_id: str
    features: AudioFeatureVector
    signed_score: int
    listen_seconds: float
    timestamp: datetime
    context_text: Optional[str] = None

    @property
    def is_positive(self) -> bool:
        return self.signed_score > 0


def _parse_timestamp(value: Any) -> datetime:
    """Accept datetimes, ISO-8601 strings and epoch seconds; naive means UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _signed_score(record: Mapping[str, Any]) -> int:
    feedback_type = record.get("feedbackType", record.get("feedback_type"))
    if feedback_type is not None:
        try:
            return FEEDBACK_TYPE_SCORES[str(feedback_type).lower()]
        except KeyError:
            raise ValueError(f"Unknown feedback type: {feedback_type!r}") from None

    raw = finite_or(record.get("signedScore", record.get("signed_score")), 0.0)
    if raw > 0:
        return UPVOTE
    if raw < 0:
        return DOWNVOTE
    return SKIP


def feedback_event_from_record(record: Mapping[str, Any]) -> FeedbackEvent:
    """
    Decode a persistence record into a FeedbackEvent.

    Understands the stored shape (``trackId``, ``feedbackType`` of
    UPVOTE/DOWNVOTE/SKIP, ``playTime``, ``createdAt``, ``audioFeatures`` and an
    optional ``vybe.contextRaw``) as well as snake_case keys.

    Raises:
        ValueError: if the record has no track id, an unknown feedback type
            or an unreadable timestamp
    """
    track_id = record.get("trackId") or record.get("track_id")
    if not track_id:
        raise ValueError("Feedback record has no track id")

    features = record.get("audioFeatures", record.get("features"))
    if not isinstance(features, AudioFeatureVector):
        features = AudioFeatureVector.from_dict(features)

    listen = record.get("playTime", record.get("listen_seconds", record.get("listenSeconds")))

    context_text = record.get("contextText") or record.get("context_text")
    vybe = record.get("vybe")
    if not context_text and isinstance(vybe, Mapping):
        context_text = vybe.get("contextRaw")

    return FeedbackEvent(
        track_id=str(track_id),
        features=features,
        signed_score=_signed_score(record),
        listen_seconds=max(finite_or(listen, 0.0), 0.0),
        timestamp=_parse_timestamp(record.get("createdAt", record.get("timestamp"))),
        context_text=context_text,
    )


def decode_feedback_history(records: Iterable[Mapping[str, Any]]) -> List[FeedbackEvent]:
    """Decode many records, skipping (and logging) the malformed ones."""
    events = []
    for record in records:
        try:
            events.append(feedback_event_from_record(record))
        except ValueError as e:
            logger.warning("Skipping malformed feedback record: %s", e)
    return events


class FeedbackStore(Protocol):
    """Read access to a listener's feedback history."""

    def get_feedback(
        self,
        listener_id: str,
        limit: int = DEFAULT_PERSONALIZATION_CONFIG.history_limit
    ) -> List[FeedbackEvent]:
        ...


class InMemoryFeedbackStore:
    """Feedback store kept in process memory, most recent first on read."""

    def __init__(self):
        self._events: Dict[str, List[FeedbackEvent]] = defaultdict(list)
        self._lock = threading.Lock()

    def record(self, listener_id: str, event: FeedbackEvent) -> None:
        with self._lock:
            self._events[listener_id].append(event)

    def get_feedback(
        self,
        listener_id: str,
        limit: int = DEFAULT_PERSONALIZATION_CONFIG.history_limit
    ) -> List[FeedbackEvent]:
        with self._lock:
            events = list(self._events.get(listener_id, []))

        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:max(limit, 0)]
