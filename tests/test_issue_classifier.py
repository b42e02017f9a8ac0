"""Tests for the SEO issue classifier."""

import pytest

from conftest import build_link
from issue_classifier import (
    aggregate_issue_labels,
    classify,
    count_links_with_issues,
    has_issues,
    issue_tags,
    link_verdicts,
    score_tier,
    status_badge_tier,
)
from models import IssueTag, ScoreTier, StatusTier


class TestIssueTags:
    def test_healthy_link_has_no_issues(self):
        link = build_link(status_code=200, total_h1_tags=1, meta_description_length=120, total_images_without_alt=0)

        result = classify(link)

        assert result["issues"] == set()
        assert result["status_tier"] == StatusTier.OK
        assert has_issues(link) is False

    def test_broken_link_collects_every_matching_tag(self):
        link = build_link(
            status_code=404,
            total_h1_tags=0,
            h1_tags=[],
            meta_description="",
            meta_description_length=0,
            total_images_on_page=5,
            total_images_without_alt=3,
            images_without_alt=["a.png", "b.png", "c.png"],
        )

        result = classify(link)

        assert {IssueTag.ERROR, IssueTag.H1_MISSING, IssueTag.META_MISSING, IssueTag.ALT_MISSING} <= result["issues"]
        assert result["status_tier"] == StatusTier.ERROR
        assert has_issues(link) is True

    def test_multiple_h1(self):
        link = build_link(total_h1_tags=3, h1_tags=["a", "b", "c"])
        assert IssueTag.H1_MULTIPLE in issue_tags(link)
        assert IssueTag.H1_MISSING not in issue_tags(link)

    def test_short_meta_description(self):
        link = build_link(meta_description="Too short", meta_description_length=9)
        tags = issue_tags(link)
        assert IssueTag.META_TOO_SHORT in tags
        assert IssueTag.META_MISSING not in tags

    def test_long_meta_description(self):
        text = "x" * 200
        link = build_link(meta_description=text, meta_description_length=200)
        assert IssueTag.META_TOO_LONG in issue_tags(link)

    @pytest.mark.parametrize(
        "length, expected",
        [(10, IssueTag.TITLE_TOO_SHORT), (75, IssueTag.TITLE_TOO_LONG)],
    )
    def test_title_length_bounds(self, length, expected):
        link = build_link(title="t" * length, title_length=length)
        assert expected in issue_tags(link)

    def test_title_issue_is_warning_only(self):
        link = build_link(title="Short", title_length=5)
        result = classify(link)
        assert result["issues"] == {IssueTag.TITLE_TOO_SHORT}
        assert result["status_tier"] == StatusTier.WARN

    def test_inconsistent_alt_counts_do_not_crash(self):
        link = build_link(total_images_without_alt=2, images_without_alt=[])
        assert IssueTag.ALT_MISSING in issue_tags(link)


class TestAggregatePredicate:
    def test_missing_h1_always_counts(self):
        link = build_link(total_h1_tags=0, h1_tags=[])
        assert has_issues(link) is True
        assert aggregate_issue_labels(link) == ["H1"]

    def test_title_length_is_ignored(self):
        link = build_link(title="Short", title_length=5)
        assert has_issues(link) is False

    def test_empty_meta_description_is_ignored(self):
        link = build_link(meta_description="", meta_description_length=0)
        assert IssueTag.META_MISSING in issue_tags(link)
        assert has_issues(link) is False

    def test_out_of_range_meta_counts(self):
        link = build_link(meta_description="Short one", meta_description_length=9)
        assert aggregate_issue_labels(link) == ["Meta"]

    def test_redirect_is_not_an_issue(self):
        link = build_link(status_code=301)
        assert has_issues(link) is False
        assert status_badge_tier(301) == StatusTier.INFO

    def test_label_order(self):
        link = build_link(status_code=500, total_h1_tags=2, total_images_without_alt=1, meta_description_length=200)
        assert aggregate_issue_labels(link) == ["Error", "H1", "Alt", "Meta"]

    def test_count_links_with_issues(self):
        links = [build_link(1), build_link(2, status_code=404), build_link(3, total_images_without_alt=1)]
        assert count_links_with_issues(links) == 2


class TestBadgesAndVerdicts:
    @pytest.mark.parametrize(
        "code, tier",
        [(200, StatusTier.OK), (204, StatusTier.OK), (302, StatusTier.INFO), (404, StatusTier.ERROR), (0, StatusTier.NEUTRAL)],
    )
    def test_status_badge_tier(self, code, tier):
        assert status_badge_tier(code) == tier

    @pytest.mark.parametrize("score, tier", [(95, ScoreTier.GOOD), (90, ScoreTier.GOOD), (50, ScoreTier.AVERAGE), (49, ScoreTier.POOR)])
    def test_score_tier(self, score, tier):
        assert score_tier(score) == tier

    def test_verdicts_for_healthy_link(self):
        verdicts = link_verdicts(build_link())
        assert verdicts == {
            "status_label": "OK",
            "h1": "ok",
            "meta_description": "ok",
            "title": "ok",
            "images_alt": "ok",
        }

    def test_error_type_wins_status_label(self):
        verdicts = link_verdicts(build_link(status_code=0, error_type="Timeout"))
        assert verdicts["status_label"] == "Timeout"

    def test_verdicts_for_broken_link(self):
        verdicts = link_verdicts(
            build_link(status_code=500, total_h1_tags=2, meta_description="", meta_description_length=0,
                       title_length=90, total_images_without_alt=1)
        )
        assert verdicts["status_label"] == ""
        assert verdicts["h1"] == "multiple"
        assert verdicts["meta_description"] == "missing"
        assert verdicts["title"] == "too_long"
        assert verdicts["images_alt"] == "missing"
