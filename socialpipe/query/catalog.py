"""
Named analytical queries over the posts table.

Each entry pairs a pydantic parameter model, a function producing the `QuerySpec`,
and a typed row model. Parameters arrive as one mapping (strings from the CLI are
coerced by pydantic); bad parameters raise `QuerySpecError`.

Usage:
    from socialpipe.query.catalog import build_named

    spec, row_model = build_named("trending_hashtags", {"limit": 5})
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from socialpipe.domain.models import CelebrityCategory
from socialpipe.errors import QuerySpecError
from socialpipe.query.spec import Aggregate, FanOut, OrderBy, Predicate, QuerySpec

DEFAULT_LIMIT = 10


# Parameters -----------------------------------------------------------------


class _Params(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class TopParams(_Params):
    limit: int = Field(DEFAULT_LIMIT, ge=1)


class CategoryParams(TopParams):
    category: CelebrityCategory


class EngagementParams(_Params):
    min_posts: int = Field(5, ge=0)


class MonthParams(_Params):
    year: int = Field(ge=1970)
    month: int = Field(ge=1, le=12)


# Rows -----------------------------------------------------------------------


class _Row(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class PostSummary(_Row):
    id: str
    body: str
    display_name: str
    like_count: Optional[int] = None
    retweet_count: Optional[int] = None
    celebrity_category: Optional[str] = None


class TagCount(_Row):
    """A hashtag or mention and how many posts carry it."""

    tag: str = Field(validation_alias=AliasChoices("hashtag", "mention", "tag"))
    count: int = Field(validation_alias=AliasChoices("frequency", "mention_count", "count"))


class CategoryEngagement(_Row):
    celebrity_category: str
    post_count: int
    avg_likes: float
    avg_retweets: float
    max_likes: int
    min_likes: int
    stddev_likes: float


class HourlyActivity(_Row):
    day: int
    hour: int
    post_count: int
    avg_likes: float
    celebrity_posts: int


# Specs ----------------------------------------------------------------------


def _top_by(name: str, column: str, extra_select: Tuple[str, ...]) -> Callable[[TopParams, str], QuerySpec]:
    def build(params: TopParams, table_schema: str) -> QuerySpec:
        return QuerySpec(
            name=name,
            table="posts",
            table_schema=table_schema,
            select=("id", "body", "display_name", column) + extra_select,
            filters=(Predicate(column=column, op=">", value=0),),
            order_by=(OrderBy(columns=(column,)),),
            limit=params.limit,
        )

    return build


def _popular_celebrity_posts(params: CategoryParams, table_schema: str) -> QuerySpec:
    return QuerySpec(
        name="popular_celebrity_posts",
        table="posts",
        table_schema=table_schema,
        select=("id", "body", "display_name", "like_count", "retweet_count"),
        filters=(
            Predicate(column="is_celebrity", value=True),
            Predicate(column="celebrity_category", value=params.category),
        ),
        order_by=(OrderBy(columns=("like_count", "retweet_count")),),
        limit=params.limit,
    )


def _tag_counts(name: str, column: str, alias: str, count_alias: str) -> Callable[[TopParams, str], QuerySpec]:
    def build(params: TopParams, table_schema: str) -> QuerySpec:
        return QuerySpec(
            name=name,
            table="posts",
            table_schema=table_schema,
            select=(alias,),
            fan_out=FanOut(column=column, alias=alias),
            group_by=(alias,),
            aggregates=(Aggregate(func="count", alias=count_alias),),
            order_by=(OrderBy(columns=(count_alias,)),),
            limit=params.limit,
        )

    return build


def _celebrity_engagement(params: EngagementParams, table_schema: str) -> QuerySpec:
    return QuerySpec(
        name="celebrity_engagement",
        table="posts",
        table_schema=table_schema,
        select=("celebrity_category",),
        filters=(Predicate(column="is_celebrity", value=True),),
        group_by=("celebrity_category",),
        aggregates=(
            Aggregate(func="count", alias="post_count"),
            Aggregate(func="avg", column="like_count", alias="avg_likes"),
            Aggregate(func="avg", column="retweet_count", alias="avg_retweets"),
            Aggregate(func="max", column="like_count", alias="max_likes"),
            Aggregate(func="min", column="like_count", alias="min_likes"),
            Aggregate(func="stddev_pop", column="like_count", alias="stddev_likes"),
        ),
        having=(Predicate(column="post_count", op=">", value=params.min_posts),),
        order_by=(OrderBy(columns=("avg_likes",)),),
    )


def _hourly_activity(params: MonthParams, table_schema: str) -> QuerySpec:
    return QuerySpec(
        name="hourly_activity",
        table="posts",
        table_schema=table_schema,
        select=("day", "hour"),
        filters=(
            Predicate(column="year", value=params.year),
            Predicate(column="month", value=params.month),
        ),
        group_by=("day", "hour"),
        aggregates=(
            Aggregate(func="count", alias="post_count"),
            Aggregate(func="avg", column="like_count", alias="avg_likes"),
            Aggregate(func="count_if", column="is_celebrity", alias="celebrity_posts"),
        ),
        order_by=(OrderBy(columns=("day",), descending=False), OrderBy(columns=("hour",), descending=False)),
    )


@dataclass(frozen=True)
class NamedQuery:
    name: str
    description: str
    params_model: Type[_Params]
    build: Callable[[Any, str], QuerySpec]
    row_model: Type[BaseModel]


_CATALOG: Dict[str, NamedQuery] = {
    entry.name: entry
    for entry in (
        NamedQuery(
            "most_liked",
            "Posts with the most likes.",
            TopParams,
            _top_by("most_liked", "like_count", ("celebrity_category",)),
            PostSummary,
        ),
        NamedQuery(
            "most_retweeted",
            "Posts with the most retweets.",
            TopParams,
            _top_by("most_retweeted", "retweet_count", ("celebrity_category",)),
            PostSummary,
        ),
        NamedQuery(
            "popular_celebrity_posts",
            "Celebrity posts in one category, ranked by likes plus retweets.",
            CategoryParams,
            _popular_celebrity_posts,
            PostSummary,
        ),
        NamedQuery(
            "trending_hashtags",
            "Most frequent hashtags.",
            TopParams,
            _tag_counts("trending_hashtags", "hashtags", "hashtag", "frequency"),
            TagCount,
        ),
        NamedQuery(
            "most_mentioned",
            "Most mentioned users.",
            TopParams,
            _tag_counts("most_mentioned", "mentions", "mention", "mention_count"),
            TagCount,
        ),
        NamedQuery(
            "celebrity_engagement",
            "Like and retweet statistics per celebrity category.",
            EngagementParams,
            _celebrity_engagement,
            CategoryEngagement,
        ),
        NamedQuery(
            "hourly_activity",
            "Post volume and likes per day and hour of one month.",
            MonthParams,
            _hourly_activity,
            HourlyActivity,
        ),
    )
}


def available_queries() -> List[str]:
    """List named query identifiers."""
    return sorted(_CATALOG)


def describe_queries() -> Dict[str, str]:
    return {name: _CATALOG[name].description for name in available_queries()}


def get_named(name: str) -> NamedQuery:
    entry = _CATALOG.get(name)
    if entry is None:
        raise QuerySpecError(f"Unknown query '{name}'. Available: {', '.join(available_queries())}")
    return entry


def build_named(
    name: str,
    params: Optional[Mapping[str, Any]] = None,
    table_schema: str = "public",
) -> Tuple[QuerySpec, Type[BaseModel]]:
    """
    Resolve a named query into a spec and its row model.

    Parameters
    ----------
    name : str
        Catalog entry, see `available_queries()`.
    params : Mapping[str, Any] | None
        Query parameters; validated by the entry's parameter model.
    table_schema : str
        Postgres schema holding the partitioned tables.

    Raises
    ------
    QuerySpecError
        Unknown name or invalid parameters.
    """
    entry = get_named(name)
    try:
        validated = entry.params_model.model_validate(dict(params or {}))
    except pydantic.ValidationError as exc:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc']) or name}: {err['msg']}" for err in exc.errors())
        raise QuerySpecError(f"Invalid parameters for '{name}': {problems}") from exc
    return entry.build(validated, table_schema), entry.row_model


__all__ = [
    "DEFAULT_LIMIT",
    "PostSummary",
    "TagCount",
    "CategoryEngagement",
    "HourlyActivity",
    "NamedQuery",
    "available_queries",
    "describe_queries",
    "get_named",
    "build_named",
]
