"""Data models for records and the remote paginated layout.

The sync core handles records as opaque JSON objects (plain dicts) that
carry at least a string ``id`` and an integer ``timestamp``. The typed
record classes below are what the application builds before handing a
record to the store.
"""

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .exceptions import InvalidRecordError, InvalidRemoteDataError
from .utils import INDEX_VERSION, PAGE_SIZE, now_ms

Record = dict[str, Any]


class Collection(str, Enum):
    """The two record collections kept in sync."""

    HISTORY = "history"
    """Practice session history"""

    NOTEBOOK = "notebook"
    """Mistake notebook entries"""


def validate_record(record: Any) -> Record:
    """Check that a payload can be stored and synced.

    Args:
        record: Candidate record

    Returns:
        The same record

    Raises:
        InvalidRecordError: If ``id`` is not a non-empty string or
            ``timestamp`` is not an integer
    """
    if not isinstance(record, dict):
        raise InvalidRecordError(f"Record must be an object, got {type(record).__name__}")
    record_id = record.get("id")
    if not isinstance(record_id, str) or not record_id:
        raise InvalidRecordError("Record is missing a string 'id'")
    timestamp = record.get("timestamp")
    # bool is an int subclass but never a valid timestamp
    if not isinstance(timestamp, int) or isinstance(timestamp, bool):
        raise InvalidRecordError(f"Record {record_id!r} is missing an integer 'timestamp'")
    return record


def dump_json(data: Any) -> bytes:
    """Serialize a document for upload.

    Keys are sorted and separators compact, so equal documents always
    produce identical bytes.
    """
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def load_json(content: bytes, source: str = "remote file") -> Any:
    """Parse a downloaded JSON document.

    Raises:
        InvalidRemoteDataError: If the content is not valid UTF-8 JSON
    """
    try:
        return json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise InvalidRemoteDataError(f"Invalid JSON in {source}: {e}") from e


# =============================================================================
# Application records
# =============================================================================


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Challenge:
    """A sentence to translate."""

    english: str
    chinese: str
    context: str = ""

    def to_dict(self) -> dict:
        return {"english": self.english, "chinese": self.chinese, "context": self.context}

    @classmethod
    def from_dict(cls, data: dict) -> "Challenge":
        return cls(
            english=data.get("english", ""),
            chinese=data.get("chinese", ""),
            context=data.get("context", ""),
        )


@dataclass
class GapAnalysisItem:
    """One difference between the user's translation and a native one."""

    type: str
    """One of vocabulary, grammar, tone, structure"""

    user_segment: str
    native_segment: str
    explanation: str

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "userSegment": self.user_segment,
            "nativeSegment": self.native_segment,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GapAnalysisItem":
        return cls(
            type=data.get("type", ""),
            user_segment=data.get("userSegment", ""),
            native_segment=data.get("nativeSegment", ""),
            explanation=data.get("explanation", ""),
        )


@dataclass
class AnalysisResult:
    """Feedback produced for one translation attempt."""

    score: int
    feedback: str
    gaps: list[GapAnalysisItem] = field(default_factory=list)
    better_alternative: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "score": self.score,
            "feedback": self.feedback,
            "gaps": [g.to_dict() for g in self.gaps],
        }
        if self.better_alternative is not None:
            data["betterAlternative"] = self.better_alternative
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisResult":
        return cls(
            score=data.get("score", 0),
            feedback=data.get("feedback", ""),
            gaps=[GapAnalysisItem.from_dict(g) for g in data.get("gaps", [])],
            better_alternative=data.get("betterAlternative"),
        )


@dataclass
class HistoryRecord:
    """A completed practice session."""

    difficulty: str
    topic: str
    challenge: Challenge
    user_translation: str
    analysis: AnalysisResult
    id: str = field(default_factory=_new_id)
    timestamp: int = field(default_factory=now_ms)
    extra: dict = field(default_factory=dict)
    """Unknown fields carried through unchanged"""

    _KNOWN = frozenset(
        {"id", "timestamp", "difficulty", "topic", "challenge", "userTranslation", "analysis"}
    )

    def to_dict(self) -> Record:
        data: Record = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "timestamp": self.timestamp,
                "difficulty": self.difficulty,
                "topic": self.topic,
                "challenge": self.challenge.to_dict(),
                "userTranslation": self.user_translation,
                "analysis": self.analysis.to_dict(),
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Record) -> "HistoryRecord":
        validate_record(data)
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            difficulty=data.get("difficulty", ""),
            topic=data.get("topic", ""),
            challenge=Challenge.from_dict(data.get("challenge") or {}),
            user_translation=data.get("userTranslation", ""),
            analysis=AnalysisResult.from_dict(data.get("analysis") or {}),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN},
        )


@dataclass
class NotebookEntry:
    """A saved mistake from the notebook."""

    original_context: str
    gap_type: str
    user_segment: str
    native_segment: str
    explanation: str
    id: str = field(default_factory=_new_id)
    timestamp: int = field(default_factory=now_ms)
    extra: dict = field(default_factory=dict)

    _KNOWN = frozenset(
        {
            "id",
            "timestamp",
            "originalContext",
            "gapType",
            "userSegment",
            "nativeSegment",
            "explanation",
        }
    )

    @classmethod
    def from_gap(cls, original_context: str, gap: GapAnalysisItem) -> "NotebookEntry":
        """Build a notebook entry for a gap found in a translation."""
        return cls(
            original_context=original_context,
            gap_type=gap.type,
            user_segment=gap.user_segment,
            native_segment=gap.native_segment,
            explanation=gap.explanation,
        )

    def to_dict(self) -> Record:
        data: Record = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "timestamp": self.timestamp,
                "originalContext": self.original_context,
                "gapType": self.gap_type,
                "userSegment": self.user_segment,
                "nativeSegment": self.native_segment,
                "explanation": self.explanation,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Record) -> "NotebookEntry":
        validate_record(data)
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            original_context=data.get("originalContext", ""),
            gap_type=data.get("gapType", ""),
            user_segment=data.get("userSegment", ""),
            native_segment=data.get("nativeSegment", ""),
            explanation=data.get("explanation", ""),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN},
        )


# =============================================================================
# Remote layout
# =============================================================================


@dataclass
class PagedData:
    """One remote page: a slice of a collection, newest first."""

    page_number: int
    records: list[Record] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"pageNumber": self.page_number, "records": self.records}

    @classmethod
    def from_dict(cls, data: Any) -> "PagedData":
        if not isinstance(data, dict) or not isinstance(data.get("records"), list):
            raise InvalidRemoteDataError("Page document has no 'records' list")
        page_number = data.get("pageNumber", 0)
        if not isinstance(page_number, int) or isinstance(page_number, bool):
            raise InvalidRemoteDataError(f"Invalid page number {page_number!r}")
        return cls(page_number=page_number, records=data["records"])


@dataclass
class PageEntry:
    """Index entry describing one remote page."""

    page_number: int
    record_count: int
    last_modified: int
    """Newest record timestamp in the page"""

    def to_dict(self) -> dict:
        return {
            "pageNumber": self.page_number,
            "recordCount": self.record_count,
            "lastModified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PageEntry":
        return cls(
            page_number=int(data["pageNumber"]),
            record_count=int(data.get("recordCount", 0)),
            last_modified=int(data.get("lastModified", 0)),
        )


@dataclass
class PageIndex:
    """Summary of how a collection is currently paginated remotely."""

    total_records: int
    total_pages: int
    last_sync_time: int
    pages: list[PageEntry] = field(default_factory=list)
    page_size: int = PAGE_SIZE
    version: int = INDEX_VERSION

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "totalRecords": self.total_records,
            "pageSize": self.page_size,
            "totalPages": self.total_pages,
            "lastSyncTime": self.last_sync_time,
            "pages": [p.to_dict() for p in self.pages],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PageIndex":
        """Parse an index document.

        Raises:
            InvalidRemoteDataError: If required fields are missing
        """
        try:
            pages = [PageEntry.from_dict(p) for p in data.get("pages", [])]
            return cls(
                version=int(data.get("version", INDEX_VERSION)),
                total_records=int(data["totalRecords"]),
                page_size=int(data.get("pageSize", PAGE_SIZE)),
                total_pages=int(data["totalPages"]),
                last_sync_time=int(data.get("lastSyncTime", 0)),
                pages=pages,
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise InvalidRemoteDataError(f"Malformed page index: {e}") from e
