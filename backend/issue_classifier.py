"""SEO issue classification for crawled links.

Two rule sets coexist and are kept separate on purpose:

- `classify` returns the detailed per-field tags used for badges.
- `has_issues` / `aggregate_issue_labels` is the narrower predicate used for
  the Issues tab and the dashboard counters. It ignores title length and only
  flags a meta description whose length is non-zero and out of range.

Inputs are not repaired: if `images_without_alt` disagrees with
`total_images_without_alt`, the counters win and no error is raised.
"""

from models import Classification, IssueTag, LinkVerdicts, ScoreTier, StatusTier
from schemas import LinkRecord

TITLE_MIN_LENGTH = 30
TITLE_MAX_LENGTH = 60
META_MIN_LENGTH = 50
META_MAX_LENGTH = 160
SCORE_GOOD = 90
SCORE_AVERAGE = 50


def issue_tags(link: LinkRecord) -> set[IssueTag]:
    """Evaluate every per-field rule; a link may carry several tags."""
    tags: set[IssueTag] = set()

    if link.status_code >= 400:
        tags.add(IssueTag.ERROR)

    if link.total_h1_tags == 0:
        tags.add(IssueTag.H1_MISSING)
    elif link.total_h1_tags > 1:
        tags.add(IssueTag.H1_MULTIPLE)

    if link.total_images_without_alt > 0:
        tags.add(IssueTag.ALT_MISSING)

    if not link.meta_description:
        tags.add(IssueTag.META_MISSING)
    elif link.meta_description_length < META_MIN_LENGTH:
        tags.add(IssueTag.META_TOO_SHORT)
    if link.meta_description_length > META_MAX_LENGTH:
        tags.add(IssueTag.META_TOO_LONG)

    if link.title_length < TITLE_MIN_LENGTH:
        tags.add(IssueTag.TITLE_TOO_SHORT)
    elif link.title_length > TITLE_MAX_LENGTH:
        tags.add(IssueTag.TITLE_TOO_LONG)

    return tags


def status_badge_tier(status_code: int) -> StatusTier:
    """Display tier of the HTTP status badge. 3xx is informational, not an issue."""
    if 200 <= status_code < 300:
        return StatusTier.OK
    if 300 <= status_code < 400:
        return StatusTier.INFO
    if status_code >= 400:
        return StatusTier.ERROR
    return StatusTier.NEUTRAL


def classify(link: LinkRecord) -> Classification:
    """Map a link's metrics to its issue tags and a severity-qualified status."""
    tags = issue_tags(link)
    if IssueTag.ERROR in tags:
        tier = StatusTier.ERROR
    elif tags:
        tier = StatusTier.WARN
    else:
        tier = StatusTier.OK
    return {"issues": tags, "status_tier": tier}


def aggregate_issue_labels(link: LinkRecord) -> list[str]:
    """Issue categories counted by the links table badge, in display order."""
    labels: list[str] = []
    if link.status_code >= 400:
        labels.append("Error")
    if link.total_h1_tags != 1:
        labels.append("H1")
    if link.total_images_without_alt > 0:
        labels.append("Alt")
    meta_length = link.meta_description_length
    if meta_length > 0 and (meta_length < META_MIN_LENGTH or meta_length > META_MAX_LENGTH):
        labels.append("Meta")
    return labels


def has_issues(link: LinkRecord) -> bool:
    return bool(aggregate_issue_labels(link))


def count_links_with_issues(links: list[LinkRecord]) -> int:
    return sum(1 for link in links if has_issues(link))


def score_tier(score: int) -> ScoreTier:
    if score >= SCORE_GOOD:
        return ScoreTier.GOOD
    if score >= SCORE_AVERAGE:
        return ScoreTier.AVERAGE
    return ScoreTier.POOR


def link_verdicts(link: LinkRecord) -> LinkVerdicts:
    """Per-field verdicts shown on the link detail view."""
    if link.error_type:
        status_label = link.error_type
    elif 200 <= link.status_code < 300:
        status_label = "OK"
    else:
        status_label = ""

    if link.total_h1_tags == 1:
        h1 = "ok"
    elif link.total_h1_tags == 0:
        h1 = "missing"
    else:
        h1 = "multiple"

    if not link.meta_description:
        meta = "missing"
    elif link.meta_description_length < META_MIN_LENGTH:
        meta = "too_short"
    elif link.meta_description_length > META_MAX_LENGTH:
        meta = "too_long"
    else:
        meta = "ok"

    if link.title_length < TITLE_MIN_LENGTH:
        title = "too_short"
    elif link.title_length > TITLE_MAX_LENGTH:
        title = "too_long"
    else:
        title = "ok"

    return {
        "status_label": status_label,
        "h1": h1,
        "meta_description": meta,
        "title": title,
        "images_alt": "ok" if link.total_images_without_alt == 0 else "missing",
    }
