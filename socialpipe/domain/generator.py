"""
Synthetic record generation for socialpipe.

Produces users, posts and engagement events whose cross-field relationships agree:
a post's `is_celebrity` flag comes from its owner's follower count against
`CELEBRITY_THRESHOLD`, and celebrity posts get a x10 engagement multiplier.
Records are built through the validating constructors, so every output passes
the record invariants. Runs are not reproducible unless an `rng` is supplied.
"""

from __future__ import annotations

import json
import random
import time
import uuid
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Union

from socialpipe.domain.models import (
    CELEBRITY_CATEGORIES,
    CELEBRITY_THRESHOLD,
    EVENT_TYPES,
    BaseRecord,
    Event,
    Post,
    RecordKind,
    User,
    resolve_kind,
)
from socialpipe.errors import InvalidArgument

CELEBRITY_ENGAGEMENT_MULTIPLIER = 10

_CELEBRITY_NAMES = {
    "tech": ("Ada Byte", "Grace Stack", "Linus Kernel", "Alan Tape", "Mara Cloud"),
    "sports": ("Rio Sprint", "Kai Striker", "Nia Serve", "Tom Pitch", "Leo Goal"),
    "entertainment": ("Sky Tune", "Dax Stage", "Ora Screen", "Eli Encore", "Ryn Reel"),
}

_HASHTAGS = (
    "#bigdata", "#hadoop", "#spark", "#kafka", "#analytics",
    "#ml", "#ai", "#tech", "#innovation", "#data",
)

_MENTIONS = (
    "@ironman", "@spiderman", "@batman", "@superman", "@wonderwoman",
    "@thor", "@hulk", "@blackwidow", "@hawkeye", "@flash",
    "@aquaman", "@deadpool", "@wolverine", "@antman", "@wasp",
    "@falcon", "@vision", "@groot", "@rocket", "@loki",
)

_POST_TEMPLATES = (
    "Just discovered something new in {category}! This changes everything in {topic} {tag}",
    "Working on some exciting {category} projects. The future of {topic} looks bright! {tag}",
    "Big announcement coming soon about {category} and {topic}! Stay tuned {tag}",
    "Love seeing the progress in {topic}. {category} is the way forward! {tag}",
    "Thoughts on the latest {category} trends? {topic} is gaining momentum {tag}",
)

_LOCATIONS = ("US", "UK", "CA", "DE", "FR", "JP", "AU", "BR")
_DEVICES = ("mobile", "desktop", "tablet")


@dataclass(frozen=True)
class GenerationParams:
    """
    Knobs for a generation run.

    Attributes
    ----------
    start_timestamp : int | None
        Start of the time window (epoch seconds). Defaults to "now".
    span_hours : int
        Width of the window; timestamps are drawn uniformly from it.
    celebrity_ratio : float
        Share of generated authors that are celebrities.
    user_pool_size : int
        Number of distinct authors posts and events are drawn from.
    """

    start_timestamp: Optional[int] = None
    span_hours: int = 1
    celebrity_ratio: float = 0.1
    user_pool_size: int = 20

    def validate(self) -> None:
        if self.start_timestamp is not None and self.start_timestamp <= 0:
            raise InvalidArgument("start_timestamp must be positive")
        if self.span_hours < 1:
            raise InvalidArgument("span_hours must be >= 1")
        if not 0.0 <= self.celebrity_ratio <= 1.0:
            raise InvalidArgument("celebrity_ratio must be within [0, 1]")
        if self.user_pool_size < 1:
            raise InvalidArgument("user_pool_size must be >= 1")


def _short_id(prefix: str, rng: random.Random) -> str:
    return f"{prefix}_{uuid.UUID(int=rng.getrandbits(128)).hex[:8]}"


class RecordGenerator:
    """
    Generate validated synthetic records.

    Parameters
    ----------
    rng : random.Random | None
        Source of randomness. Pass a seeded instance for repeatable output.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    # Single-record helpers -------------------------------------------------

    def _timestamp(self, params: GenerationParams) -> int:
        start = params.start_timestamp or int(time.time())
        return start + self.rng.randrange(params.span_hours * 3600)

    def generate_celebrity(self, timestamp: int) -> User:
        rng = self.rng
        category = rng.choice(CELEBRITY_CATEGORIES)
        names = _CELEBRITY_NAMES.get(category)
        name = rng.choice(names) if names else f"Celebrity {rng.randrange(1000)}"
        return User.create(
            id=_short_id("user", rng),
            username=f"{name.lower().replace(' ', '_')}_{rng.randrange(100)}",
            display_name=name,
            follower_count=rng.randrange(CELEBRITY_THRESHOLD, 50_000_000),
            following_count=rng.randrange(100, 10_000),
            post_count=rng.randrange(1_000, 51_000),
            verified=rng.random() > 0.3,
            bio=f"{category} expert and thought leader in {category}",
            category=category,
            timestamp=timestamp,
        )

    def generate_regular_user(self, timestamp: int) -> User:
        rng = self.rng
        return User.create(
            id=_short_id("user", rng),
            username=f"user_{rng.randrange(100_000)}",
            display_name=f"User {rng.randrange(10_000)}",
            follower_count=rng.randrange(10, 50_000),
            following_count=rng.randrange(50, 2_000),
            post_count=rng.randrange(10, 1_010),
            verified=rng.random() > 0.95,
            bio="Just a regular user sharing thoughts",
            category="other",
            timestamp=timestamp,
        )

    def generate_post(self, user: User, timestamp: int) -> Post:
        rng = self.rng
        category = user.category if user.category != "other" else "tech"
        body = rng.choice(_POST_TEMPLATES).format(
            category=category, topic="technology", tag=rng.choice(_HASHTAGS)
        )
        mentions = list(dict.fromkeys(rng.choice(_MENTIONS) for _ in range(rng.randint(1, 3))))
        multiplier = CELEBRITY_ENGAGEMENT_MULTIPLIER if user.is_celebrity else 1
        return Post.create(
            id=_short_id("post", rng),
            owner_id=user.id,
            display_name=user.username,
            body=body[:280],
            timestamp=timestamp,
            hashtags=[rng.choice(_HASHTAGS), f"#{category}"],
            mentions=mentions,
            like_count=rng.randrange(1_000 * multiplier),
            retweet_count=rng.randrange(500 * multiplier),
            reply_count=rng.randrange(100 * multiplier),
            is_celebrity=user.is_celebrity,
            celebrity_category=user.celebrity_category,
        )

    def generate_event(self, user: User, target: User, timestamp: int) -> Event:
        rng = self.rng
        involved = target.is_celebrity
        metadata = json.dumps({"location": rng.choice(_LOCATIONS), "device": rng.choice(_DEVICES)})
        return Event.create(
            id=_short_id("event", rng),
            event_type=rng.choice(EVENT_TYPES),
            user_id=user.id,
            target_id=target.id,
            timestamp=timestamp,
            metadata=metadata,
            is_celebrity_involved=involved,
            celebrity_id=target.id if involved else None,
        )

    # Batch generation ------------------------------------------------------

    def _user_pool(self, params: GenerationParams) -> List[User]:
        pool = []
        for _ in range(params.user_pool_size):
            timestamp = self._timestamp(params)
            if self.rng.random() < params.celebrity_ratio:
                pool.append(self.generate_celebrity(timestamp))
            else:
                pool.append(self.generate_regular_user(timestamp))
        return pool

    def generate(
        self,
        kind: Union[str, RecordKind],
        count: int,
        params: Optional[GenerationParams] = None,
    ) -> Sequence[BaseRecord]:
        """
        Produce `count` records of `kind`.

        Raises
        ------
        InvalidArgument
            If `count` is negative, `kind` is unknown, or `params` are out of range.
        """
        if count < 0:
            raise InvalidArgument(f"count must be >= 0, got {count}")
        record_kind = resolve_kind(kind)
        params = params or GenerationParams()
        params.validate()

        if count == 0:
            return []
        if record_kind is RecordKind.USERS:
            return self._user_pool(replace(params, user_pool_size=count))

        pool = self._user_pool(params)
        if record_kind is RecordKind.POSTS:
            return [self.generate_post(self.rng.choice(pool), self._timestamp(params)) for _ in range(count)]
        return [
            self.generate_event(self.rng.choice(pool), self.rng.choice(pool), self._timestamp(params))
            for _ in range(count)
        ]


__all__ = ["CELEBRITY_ENGAGEMENT_MULTIPLIER", "GenerationParams", "RecordGenerator"]
