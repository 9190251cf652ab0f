"""
Domain models for socialpipe.

Every record kind is a frozen Pydantic model with a required positive `timestamp`
(epoch seconds). Field constraints are declared on the model; cross-field rules live in
each model's `violations()` and run as an after-validator, so even a bare constructor
call rejects a record that breaks them. `create()` converts either failure into the
pipeline's `ValidationError`, so an invalid record never reaches a batch.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Type, Union, get_args

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, computed_field, model_validator

from socialpipe.errors import InvalidArgument, ValidationError

CELEBRITY_THRESHOLD = 100_000

CelebrityCategory = Literal["sports", "entertainment", "politics", "tech", "business", "other"]
EventType = Literal["like", "retweet", "reply", "mention", "follow", "unfollow", "post"]

CELEBRITY_CATEGORIES: Tuple[str, ...] = get_args(CelebrityCategory)
EVENT_TYPES: Tuple[str, ...] = get_args(EventType)

NonBlank = Annotated[str, StringConstraints(min_length=1, pattern=r"\S")]
Username = Annotated[str, StringConstraints(min_length=1, max_length=50, pattern=r"\S")]
DisplayName = Annotated[str, StringConstraints(min_length=1, max_length=100, pattern=r"\S")]


class RecordKind(str, Enum):
    """Record kinds; the value doubles as the storage path segment and table name."""

    USERS = "users"
    POSTS = "posts"
    EVENTS = "events"


class _RuleViolations(ValueError):
    """Carries every cross-field problem out of the after-validator."""

    def __init__(self, problems: List[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems


def _describe(exc: pydantic.ValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        cause = error.get("ctx", {}).get("error")
        if isinstance(cause, _RuleViolations):
            messages.extend(cause.problems)
            continue
        location = ".".join(str(part) for part in error["loc"]) or "record"
        messages.append(f"{location}: {error['msg']}")
    return messages


class BaseRecord(BaseModel):
    """
    Shared behaviour for all record kinds.
    """

    kind: ClassVar[RecordKind]

    timestamp: int = Field(..., gt=0, description="Event time, seconds since epoch (UTC).")

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    def violations(self) -> List[str]:
        """Cross-field rule violations; field constraints are enforced on construction."""
        return []

    @model_validator(mode="after")
    def enforce_rules(self) -> "BaseRecord":
        problems = self.violations()
        if problems:
            raise _RuleViolations(problems)
        return self

    @classmethod
    def create(cls, **fields: Any) -> "BaseRecord":
        """
        Build a record, raising `ValidationError` with every violated constraint.
        """
        try:
            record = cls(**fields)
        except pydantic.ValidationError as exc:
            raise ValidationError(cls.kind.value, _describe(exc)) from exc
        return record

    def to_json_dict(self) -> Dict[str, Any]:
        """JSON-ready payload for JSON-lines output."""
        return self.model_dump(mode="json")


class User(BaseRecord):
    """
    A platform account. Celebrity status is computed from the follower count and is
    never set directly.
    """

    kind: ClassVar[RecordKind] = RecordKind.USERS

    id: NonBlank
    username: Username
    display_name: DisplayName
    follower_count: int = Field(..., ge=0)
    following_count: int = Field(..., ge=0)
    post_count: int = Field(0, ge=0)
    verified: bool = False
    bio: Optional[str] = Field(None, max_length=500)
    category: CelebrityCategory = "other"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_celebrity(self) -> bool:
        return self.follower_count >= CELEBRITY_THRESHOLD

    @property
    def celebrity_category(self) -> str:
        return self.category if self.is_celebrity else "other"


class Post(BaseRecord):
    """A short post with engagement counters and multi-valued tag fields."""

    kind: ClassVar[RecordKind] = RecordKind.POSTS

    id: NonBlank
    owner_id: NonBlank
    display_name: Username
    body: Annotated[str, StringConstraints(min_length=1, max_length=280, pattern=r"\S")]
    hashtags: Tuple[str, ...] = Field(default=(), max_length=10)
    mentions: Tuple[str, ...] = Field(default=(), max_length=10)
    like_count: int = Field(0, ge=0)
    retweet_count: int = Field(0, ge=0)
    reply_count: int = Field(0, ge=0)
    is_celebrity: bool = False
    celebrity_category: CelebrityCategory = "other"

    def violations(self) -> List[str]:
        problems = []
        for index, tag in enumerate(self.hashtags):
            if not tag.startswith("#") or not tag[1:].strip():
                problems.append(f"hashtags.{index}: must be '#' followed by text, got {tag!r}")
        for index, mention in enumerate(self.mentions):
            if not mention.startswith("@") or not mention[1:].strip():
                problems.append(f"mentions.{index}: must be '@' followed by text, got {mention!r}")
        return problems


class Event(BaseRecord):
    """An engagement event (like, follow, ...) between a user and a target."""

    kind: ClassVar[RecordKind] = RecordKind.EVENTS

    id: NonBlank
    event_type: EventType
    user_id: NonBlank
    target_id: NonBlank
    metadata: Optional[str] = Field(None, max_length=1000)
    is_celebrity_involved: bool = False
    celebrity_id: Optional[str] = None

    def violations(self) -> List[str]:
        if self.is_celebrity_involved and not self.celebrity_id:
            return ["celebrity_id: required when is_celebrity_involved is set"]
        if not self.is_celebrity_involved and self.celebrity_id:
            return ["celebrity_id: must be empty when no celebrity is involved"]
        return []


Record = Union[User, Post, Event]

MODEL_BY_KIND: Dict[RecordKind, Type[BaseRecord]] = {
    RecordKind.USERS: User,
    RecordKind.POSTS: Post,
    RecordKind.EVENTS: Event,
}


def resolve_kind(kind: Union[str, RecordKind]) -> RecordKind:
    """Normalise a kind name, raising `InvalidArgument` for unknown kinds."""
    try:
        return RecordKind(kind)
    except ValueError:
        available = ", ".join(k.value for k in RecordKind)
        raise InvalidArgument(f"Unknown record kind '{kind}'. Available: {available}") from None


def build_record(kind: Union[str, RecordKind], **fields: Any) -> BaseRecord:
    """Validate and build a record of the given kind."""
    return MODEL_BY_KIND[resolve_kind(kind)].create(**fields)


__all__ = [
    "CELEBRITY_THRESHOLD",
    "CELEBRITY_CATEGORIES",
    "EVENT_TYPES",
    "CelebrityCategory",
    "EventType",
    "RecordKind",
    "BaseRecord",
    "User",
    "Post",
    "Event",
    "Record",
    "MODEL_BY_KIND",
    "resolve_kind",
    "build_record",
]
