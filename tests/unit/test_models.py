from __future__ import annotations

import random

import pydantic
import pytest

from socialpipe.domain.generator import CELEBRITY_ENGAGEMENT_MULTIPLIER, GenerationParams, RecordGenerator
from socialpipe.domain.models import CELEBRITY_THRESHOLD, Event, Post, RecordKind, User, build_record
from socialpipe.errors import InvalidArgument, ValidationError

START = 1722517200  # 2024-08-01 13:00:00 UTC


def _user(**overrides) -> User:
    fields = {
        "id": "user_1",
        "username": "ada",
        "display_name": "Ada",
        "follower_count": 10,
        "following_count": 5,
        "timestamp": START,
    }
    fields.update(overrides)
    return User.create(**fields)


class TestValidation:
    def test_timestamp_must_be_positive(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _user(timestamp=0)
        assert exc_info.value.kind == "users"
        assert any("timestamp" in v for v in exc_info.value.violations)

    def test_every_violation_is_reported(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _user(username="", follower_count=-1, bio="x" * 501)
        fields = " ".join(exc_info.value.violations)
        assert "username" in fields
        assert "follower_count" in fields
        assert "bio" in fields

    def test_post_body_is_bounded(self, make_post) -> None:
        make_post(body="x" * 280)
        with pytest.raises(ValidationError):
            make_post(body="x" * 281)

    def test_post_tag_lists_are_bounded(self, make_post) -> None:
        with pytest.raises(ValidationError):
            make_post(hashtags=[f"#t{i}" for i in range(11)])

    def test_post_tags_need_prefix(self, make_post) -> None:
        with pytest.raises(ValidationError) as exc_info:
            make_post(hashtags=["data", "#"], mentions=["loki"])
        assert len(exc_info.value.violations) == 3

    def test_event_celebrity_fields_must_agree(self) -> None:
        base = {
            "id": "event_1",
            "event_type": "like",
            "user_id": "user_1",
            "target_id": "user_2",
            "timestamp": START,
        }
        Event.create(**base, is_celebrity_involved=True, celebrity_id="user_2")
        with pytest.raises(ValidationError):
            Event.create(**base, is_celebrity_involved=True)
        with pytest.raises(ValidationError):
            Event.create(**base, celebrity_id="user_2")

    def test_constructor_enforces_cross_field_rules(self) -> None:
        with pytest.raises(pydantic.ValidationError, match="hashtags.0"):
            Post(
                id="post_1",
                owner_id="user_1",
                display_name="ada",
                body="hello",
                hashtags=("data",),
                timestamp=START,
            )
        with pytest.raises(pydantic.ValidationError, match="celebrity_id"):
            Event(
                id="event_1",
                event_type="like",
                user_id="user_1",
                target_id="user_2",
                is_celebrity_involved=True,
                timestamp=START,
            )

    def test_model_validate_enforces_cross_field_rules(self) -> None:
        payload = {
            "id": "event_1",
            "event_type": "follow",
            "user_id": "user_1",
            "target_id": "user_2",
            "celebrity_id": "user_2",
            "timestamp": START,
        }
        with pytest.raises(pydantic.ValidationError):
            Event.model_validate(payload)

    def test_unknown_category_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _user(category="gardening")

    def test_records_are_immutable(self, make_post) -> None:
        post = make_post()
        with pytest.raises(pydantic.ValidationError):
            post.like_count = 1

    def test_build_record_resolves_kind(self) -> None:
        user = build_record(
            "users", id="u", username="u", display_name="U", follower_count=1, following_count=1, timestamp=START
        )
        assert isinstance(user, User)
        with pytest.raises(InvalidArgument):
            build_record("tweets", id="x")


class TestCelebrity:
    def test_threshold_is_inclusive(self) -> None:
        assert _user(follower_count=CELEBRITY_THRESHOLD).is_celebrity
        assert not _user(follower_count=CELEBRITY_THRESHOLD - 1).is_celebrity

    def test_flag_cannot_be_set_directly(self) -> None:
        with pytest.raises(ValidationError):
            _user(is_celebrity=True)

    def test_category_collapses_to_other_below_threshold(self) -> None:
        assert _user(category="tech").celebrity_category == "other"
        assert _user(category="tech", follower_count=CELEBRITY_THRESHOLD).celebrity_category == "tech"

    def test_json_payload_includes_flag(self) -> None:
        payload = _user(follower_count=CELEBRITY_THRESHOLD).to_json_dict()
        assert payload["is_celebrity"] is True


class TestGenerator:
    @pytest.fixture
    def generator(self) -> RecordGenerator:
        return RecordGenerator(random.Random(7))

    def test_negative_count_fails_fast(self, generator: RecordGenerator) -> None:
        with pytest.raises(InvalidArgument):
            generator.generate("posts", -1)

    def test_unknown_kind_fails_fast(self, generator: RecordGenerator) -> None:
        with pytest.raises(InvalidArgument):
            generator.generate("tweets", 1)

    def test_bad_params_fail_fast(self, generator: RecordGenerator) -> None:
        with pytest.raises(InvalidArgument):
            generator.generate("posts", 1, GenerationParams(span_hours=0))

    def test_zero_count_yields_nothing(self, generator: RecordGenerator) -> None:
        assert generator.generate("events", 0) == []

    @pytest.mark.parametrize("kind", list(RecordKind))
    def test_generates_requested_count_within_window(self, generator: RecordGenerator, kind: RecordKind) -> None:
        params = GenerationParams(start_timestamp=START, span_hours=2)
        records = generator.generate(kind, 25, params)
        assert len(records) == 25
        assert all(START <= r.timestamp < START + 2 * 3600 for r in records)
        assert all(r.kind is kind for r in records)

    def test_post_flags_agree_with_owner(self, generator: RecordGenerator) -> None:
        celebrity = generator.generate_celebrity(START)
        regular = generator.generate_regular_user(START)

        celebrity_post = generator.generate_post(celebrity, START)
        regular_post = generator.generate_post(regular, START)

        assert celebrity.follower_count >= CELEBRITY_THRESHOLD
        assert regular.follower_count < CELEBRITY_THRESHOLD
        assert celebrity_post.is_celebrity and celebrity_post.celebrity_category == celebrity.category
        assert not regular_post.is_celebrity and regular_post.celebrity_category == "other"
        assert regular_post.like_count < 1_000
        assert celebrity_post.like_count < 1_000 * CELEBRITY_ENGAGEMENT_MULTIPLIER

    def test_all_celebrity_pool(self, generator: RecordGenerator) -> None:
        params = GenerationParams(start_timestamp=START, celebrity_ratio=1.0, user_pool_size=3)
        posts = generator.generate("posts", 10, params)
        assert all(isinstance(p, Post) and p.is_celebrity for p in posts)

    def test_events_flag_celebrity_targets(self, generator: RecordGenerator) -> None:
        params = GenerationParams(start_timestamp=START, celebrity_ratio=1.0, user_pool_size=2)
        events = generator.generate("events", 5, params)
        assert all(e.is_celebrity_involved and e.celebrity_id == e.target_id for e in events)
