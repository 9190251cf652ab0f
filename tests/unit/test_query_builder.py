from __future__ import annotations

import pytest

from socialpipe.errors import QuerySpecError
from socialpipe.query.builder import QueryBuilder
from socialpipe.query.catalog import available_queries, build_named
from socialpipe.query.spec import Aggregate, FanOut, OrderBy, Predicate, QuerySpec


@pytest.fixture
def builder() -> QueryBuilder:
    return QueryBuilder()


class TestRendering:
    def test_top_k_with_filter(self, builder: QueryBuilder) -> None:
        spec = QuerySpec(
            table="posts",
            select=("id", "like_count"),
            filters=(Predicate(column="like_count", op=">", value=0),),
            order_by=(OrderBy(columns=("like_count",)),),
            limit=3,
        )

        query = builder.build(spec)

        assert query.text == (
            'SELECT "t"."id", "t"."like_count" FROM "public"."posts" AS "t" '
            'WHERE "t"."like_count" > %s ORDER BY "t"."like_count" DESC LIMIT %s'
        )
        assert query.params == (0, 3)

    def test_fan_out_grouped_count(self, builder: QueryBuilder) -> None:
        spec = QuerySpec(
            table="posts",
            select=("hashtag",),
            fan_out=FanOut(column="hashtags", alias="hashtag"),
            group_by=("hashtag",),
            aggregates=(Aggregate(func="count", alias="frequency"),),
            order_by=(OrderBy(columns=("frequency",)),),
            limit=5,
        )

        query = builder.build(spec)

        assert query.text == (
            'SELECT "fan"."hashtag", COUNT(*) AS "frequency" FROM "public"."posts" AS "t" '
            'CROSS JOIN LATERAL unnest("t"."hashtags") AS "fan"("hashtag") '
            'GROUP BY "fan"."hashtag" ORDER BY COUNT(*) DESC LIMIT %s'
        )
        assert query.params == (5,)

    def test_parameters_follow_clause_order(self, builder: QueryBuilder) -> None:
        spec, _ = build_named("celebrity_engagement", {"min_posts": 7})

        query = builder.build(spec)

        assert query.params == (True, 7)
        assert "HAVING COUNT(*) > %s" in query.text
        assert 'STDDEV_POP("t"."like_count") AS "stddev_likes"' in query.text
        assert query.text.index("WHERE") < query.text.index("GROUP BY") < query.text.index("HAVING")
        assert query.text.index("HAVING") < query.text.index("ORDER BY")

    def test_sum_ordering_and_in_list(self, builder: QueryBuilder) -> None:
        spec = QuerySpec(
            table="posts",
            select=("id",),
            filters=(Predicate(column="celebrity_category", op="in", value=("tech", "sports")),),
            order_by=(OrderBy(columns=("like_count", "retweet_count")),),
        )

        query = builder.build(spec)

        assert '"t"."celebrity_category" = ANY(%s)' in query.text
        assert 'ORDER BY ("t"."like_count" + "t"."retweet_count") DESC' in query.text
        assert query.params == (["tech", "sports"],)

    def test_null_comparison_needs_no_parameter(self, builder: QueryBuilder) -> None:
        spec = QuerySpec(table="events", select=("id",), filters=(Predicate(column="celebrity_id", op="!="),))

        query = builder.build(spec)

        assert query.text.endswith('WHERE "t"."celebrity_id" IS NOT NULL')
        assert query.params == ()

    def test_count_if_and_ascending_order(self, builder: QueryBuilder) -> None:
        spec, _ = build_named("hourly_activity", {"year": 2024, "month": 8})

        query = builder.build(spec)

        assert 'COUNT(*) FILTER (WHERE "t"."is_celebrity") AS "celebrity_posts"' in query.text
        assert query.text.endswith('ORDER BY "t"."day" ASC, "t"."hour" ASC')
        assert query.params == (2024, 8)

    def test_values_never_reach_the_text(self, builder: QueryBuilder) -> None:
        hostile = "x'); DROP TABLE posts; --"
        spec = QuerySpec(table="posts", select=("id",), filters=(Predicate(column="body", value=hostile),))

        query = builder.build(spec)

        assert hostile not in query.text
        assert query.params == (hostile,)

    def test_custom_schema_is_quoted(self, builder: QueryBuilder) -> None:
        query = builder.build(QuerySpec(table="users", select=("id",), table_schema="analytics"))
        assert 'FROM "analytics"."users" AS "t"' in query.text


class TestValidation:
    @pytest.mark.parametrize(
        "spec",
        [
            QuerySpec(table="tweets", select=("id",)),
            QuerySpec(table="posts", select=("nope",)),
            QuerySpec(table="posts"),
            QuerySpec(table="posts", select=("id",), limit=0),
            QuerySpec(table="posts", select=("id",), filters=(Predicate(column="id", op="~", value="a"),)),
            QuerySpec(table="posts", select=("id",), filters=(Predicate(column="id", op="in", value="abc"),)),
            QuerySpec(table="posts", select=("id",), filters=(Predicate(column="id", op="in", value=()),)),
            QuerySpec(table="posts", select=("id",), filters=(Predicate(column="like_count", op=">"),)),
            QuerySpec(table="posts", select=("id",), fan_out=FanOut(column="body", alias="word")),
            QuerySpec(table="posts", select=("id",), fan_out=FanOut(column="hashtags", alias="id")),
            QuerySpec(table="posts", select=("id",), fan_out=FanOut(column="hashtags", alias="Bad-Alias")),
            QuerySpec(table="posts", select=("id",), aggregates=(Aggregate(func="count", alias="n"),)),
            QuerySpec(table="posts", aggregates=(Aggregate(func="median", column="like_count", alias="m"),)),
            QuerySpec(table="posts", aggregates=(Aggregate(func="avg", column="body", alias="m"),)),
            QuerySpec(table="posts", aggregates=(Aggregate(func="sum", alias="m"),)),
            QuerySpec(table="posts", aggregates=(Aggregate(func="count_if", column="like_count", alias="m"),)),
            QuerySpec(
                table="posts",
                aggregates=(Aggregate(func="count", alias="n"), Aggregate(func="count", alias="n")),
            ),
            QuerySpec(table="posts", select=("id",), having=(Predicate(column="n", op=">", value=1),)),
            QuerySpec(
                table="posts",
                select=("celebrity_category",),
                group_by=("celebrity_category",),
                aggregates=(Aggregate(func="count", alias="n"),),
                having=(Predicate(column="missing", op=">", value=1),),
            ),
            QuerySpec(
                table="posts",
                select=("celebrity_category",),
                group_by=("celebrity_category",),
                aggregates=(Aggregate(func="count", alias="n"),),
                order_by=(OrderBy(columns=("like_count",)),),
            ),
            QuerySpec(table="posts", select=("id",), order_by=(OrderBy(columns=("body", "like_count")),)),
            QuerySpec(table="posts", select=("id",), order_by=(OrderBy(columns=()),)),
        ],
    )
    def test_malformed_specs_raise_query_spec_error(self, builder: QueryBuilder, spec: QuerySpec) -> None:
        with pytest.raises(QuerySpecError):
            builder.build(spec)


class TestCatalog:
    def test_every_named_query_builds(self, builder: QueryBuilder) -> None:
        params = {
            "popular_celebrity_posts": {"category": "tech"},
            "hourly_activity": {"year": "2024", "month": "8"},
        }
        for name in available_queries():
            spec, row_model = build_named(name, params.get(name))
            query = builder.build(spec)
            assert query.name == name
            assert row_model is not None

    def test_string_parameters_are_coerced(self) -> None:
        spec, _ = build_named("most_liked", {"limit": "3"})
        assert spec.limit == 3

    def test_schema_is_threaded_through(self) -> None:
        spec, _ = build_named("trending_hashtags", table_schema="analytics")
        assert spec.table_schema == "analytics"

    @pytest.mark.parametrize(
        "name, params",
        [
            ("nope", {}),
            ("most_liked", {"limit": 0}),
            ("most_liked", {"limit": "many"}),
            ("most_liked", {"unexpected": 1}),
            ("popular_celebrity_posts", {"category": "gardening"}),
            ("hourly_activity", {"year": 2024, "month": 13}),
        ],
    )
    def test_bad_names_and_parameters(self, name: str, params: dict) -> None:
        with pytest.raises(QuerySpecError):
            build_named(name, params)

    @pytest.mark.parametrize("key", ["table_schema", "name", "params"])
    def test_parameter_names_never_shadow_arguments(self, key: str) -> None:
        with pytest.raises(QuerySpecError, match=key):
            build_named("most_liked", {key: "analytics"})

    def test_params_mapping_is_not_mutated(self) -> None:
        params = {"limit": "4"}
        build_named("most_liked", params)
        assert params == {"limit": "4"}
