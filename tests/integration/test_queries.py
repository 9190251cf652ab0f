"""
Integration tests for partitioned table writes and named queries.

These tests run against a real PostgreSQL instance and verify that:
1. Table writes create the schema, parent and hourly child tables
2. Named queries return ordered, typed rows
3. Fan-out and grouped aggregation behave as documented

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os

import pytest
from psycopg import sql

from socialpipe.infrastructure.db_factory import query_connector
from socialpipe.pipeline import run_analysis, run_query, write_records
from socialpipe.query.catalog import CategoryEngagement, HourlyActivity, PostSummary, TagCount, available_queries
from socialpipe.query.executor import QueryExecutor
from socialpipe.query.spec import FanOut, Predicate, QuerySpec

# 2024-08-01 13:00:00 UTC
HOUR_13 = 1722517200
HOUR_14 = HOUR_13 + 3600

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


def _count(db_connection, schema: str, table: str) -> int:
    query = sql.SQL("SELECT count(*) FROM {}").format(sql.Identifier(schema, table))
    return db_connection.execute(query).fetchone()[0]


@pytest.fixture
def seed_posts(test_settings, clean_schema):
    def _seed(posts):
        report = write_records(
            "posts",
            posts,
            target="table",
            settings=test_settings,
            connector=query_connector(test_settings),
        )
        report.raise_for_failures()
        return report

    return _seed


@pytest.mark.integration
class TestTableWrites:
    def test_rows_land_in_hourly_child_tables(self, seed_posts, make_post, db_connection, clean_schema):
        report = seed_posts(
            [
                make_post(timestamp=HOUR_13 + 1),
                make_post(timestamp=HOUR_13 + 2),
                make_post(timestamp=HOUR_14 + 3),
            ]
        )

        assert [p.location for p in report.partitions] == [
            f"{clean_schema}.posts_y2024m08d01h13",
            f"{clean_schema}.posts_y2024m08d01h14",
        ]
        assert _count(db_connection, clean_schema, "posts_y2024m08d01h13") == 2
        assert _count(db_connection, clean_schema, "posts_y2024m08d01h14") == 1
        assert _count(db_connection, clean_schema, "posts") == 3

    def test_rewrite_reuses_existing_tables(self, seed_posts, make_post, db_connection, clean_schema):
        posts = [make_post(timestamp=HOUR_13)]

        seed_posts(posts)
        seed_posts(posts)

        assert _count(db_connection, clean_schema, "posts") == 2


@pytest.mark.integration
class TestNamedQueries:
    def test_top_k_is_ordered_and_limited(self, seed_posts, make_post, test_settings):
        seed_posts([make_post(timestamp=HOUR_13 + i, like_count=likes) for i, likes in enumerate([5, 50, 20, 40, 10])])

        rows = run_query("most_liked", {"limit": 3}, settings=test_settings)

        assert all(isinstance(row, PostSummary) for row in rows)
        assert [row.like_count for row in rows] == [50, 40, 20]

    def test_fan_out_repeats_scalar_columns(self, seed_posts, make_post, test_settings):
        post = make_post(hashtags=["#data", "#tech"], like_count=7)
        seed_posts([post])
        spec = QuerySpec(
            table="posts",
            table_schema=test_settings.table_schema,
            select=("id", "like_count", "hashtag"),
            fan_out=FanOut(column="hashtags", alias="hashtag"),
            filters=(Predicate(column="id", value=post.id),),
        )

        rows = QueryExecutor(query_connector(test_settings)).run(spec)

        assert sorted(row["hashtag"] for row in rows) == ["#data", "#tech"]
        assert {(row["id"], row["like_count"]) for row in rows} == {(post.id, 7)}

    def test_trending_hashtags_counts_every_element(self, seed_posts, make_post, test_settings):
        seed_posts(
            [
                make_post(hashtags=["#data", "#tech"]),
                make_post(hashtags=["#data"]),
                make_post(hashtags=[]),
            ]
        )

        rows = run_query("trending_hashtags", settings=test_settings)

        assert rows[0] == TagCount(tag="#data", count=2)
        assert TagCount(tag="#tech", count=1) in rows

    def test_celebrity_engagement_groups_and_filters(self, seed_posts, make_post, test_settings):
        celebrity = {"is_celebrity": True, "celebrity_category": "tech"}
        seed_posts(
            [
                make_post(like_count=100, **celebrity),
                make_post(like_count=200, **celebrity),
                make_post(like_count=300, **celebrity),
                make_post(like_count=999, is_celebrity=True, celebrity_category="sports"),
                make_post(like_count=5000),
            ]
        )

        rows = run_query("celebrity_engagement", {"min_posts": 1}, settings=test_settings)

        assert len(rows) == 1
        (row,) = rows
        assert isinstance(row, CategoryEngagement)
        assert row.celebrity_category == "tech"
        assert row.post_count == 3
        assert row.avg_likes == pytest.approx(200.0)
        assert (row.min_likes, row.max_likes) == (100, 300)

    def test_hourly_activity_orders_by_hour(self, seed_posts, make_post, test_settings):
        seed_posts(
            [
                make_post(timestamp=HOUR_14, like_count=10, is_celebrity=True, celebrity_category="tech"),
                make_post(timestamp=HOUR_13, like_count=4),
                make_post(timestamp=HOUR_13 + 60, like_count=6),
            ]
        )

        rows = run_query("hourly_activity", {"year": 2024, "month": 8}, settings=test_settings)

        assert rows == [
            HourlyActivity(day=1, hour=13, post_count=2, avg_likes=5.0, celebrity_posts=0),
            HourlyActivity(day=1, hour=14, post_count=1, avg_likes=10.0, celebrity_posts=1),
        ]

    def test_analysis_runs_every_named_query(self, seed_posts, make_post, test_settings):
        seed_posts(
            [
                make_post(timestamp=HOUR_13, like_count=10, is_celebrity=True, celebrity_category="tech"),
                make_post(timestamp=HOUR_14, like_count=3, hashtags=["#data"]),
            ]
        )

        results = run_analysis({"year": 2024, "month": 8, "category": "tech", "limit": 5}, settings=test_settings)

        assert list(results) == available_queries()
        assert [row.like_count for row in results["most_liked"]] == [10, 3]
        assert len(results["popular_celebrity_posts"]) == 1
        assert len(results["hourly_activity"]) == 2
