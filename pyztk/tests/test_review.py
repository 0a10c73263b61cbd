"""Tests for review feedback listing and prompt formatting."""

import click
import pytest

from pyztk.github.types import PRReviewSummary, Review, ReviewComment, ReviewState
from pyztk.review import (
    CommentFeedback, ReviewFeedback, feedback_items, format_prompt, item_author, item_label, item_text,
    render_feedback_list,
)


@pytest.fixture
def summary() -> PRReviewSummary:
    return PRReviewSummary(
        pr_number=7,
        pr_title="Add parser",
        pr_url="https://github.com/acme/widgets/pull/7",
        branch="ztk/feature/aaaaaaaa",
        reviews=[
            Review(id=1, author="bob", state=ReviewState.CHANGES_REQUESTED, body="Needs tests"),
            Review(id=2, author="carol", state=ReviewState.APPROVED),
        ],
        comments=[
            ReviewComment(id=10, author="bob", body="Use a constant here", path="parser.py", line=14,
                          diff_hunk="@@ -10,4 +10,5 @@\n+MAX = 3"),
            ReviewComment(id=11, author="dave", body="Why?", path="", line=None),
        ],
    )


def test_items_skip_empty_reviews(summary) -> None:
    items = feedback_items(summary)

    assert len(items) == summary.feedback_count() == 3
    assert isinstance(items[0], ReviewFeedback)
    assert [item_author(i) for i in items] == ["bob", "bob", "dave"]
    assert item_text(items[1]) == "Use a constant here"


def test_item_labels(summary) -> None:
    items = feedback_items(summary)
    assert item_label(items[0]) == "review (CHANGES_REQUESTED) by @bob"
    assert item_label(items[1]) == "parser.py:14 by @bob"
    assert item_label(items[2]) == "(general) by @dave"


def test_unknown_item_is_rejected() -> None:
    with pytest.raises(TypeError):
        item_author("not an item")  # type: ignore[arg-type]


def test_comment_prompt(summary) -> None:
    prompt = format_prompt(CommentFeedback(summary.comments[0]), summary)

    assert prompt.startswith("# Code Review Feedback\n\n## Context\n")
    assert "- **Pull Request**: Add parser (#7)" in prompt
    assert "- **File**: parser.py:14" in prompt
    assert "- **Reviewer**: bob" in prompt
    assert "## Feedback\nUse a constant here\n" in prompt
    assert "## Code Context\n```diff\n@@ -10,4 +10,5 @@\n+MAX = 3\n```" in prompt
    assert prompt.endswith("3. Provide the corrected code\n")


def test_comment_prompt_without_file_or_diff(summary) -> None:
    prompt = format_prompt(CommentFeedback(summary.comments[1]), summary)
    assert "**File**" not in prompt
    assert "## Code Context" not in prompt


def test_changes_requested_prompt(summary) -> None:
    prompt = format_prompt(ReviewFeedback(summary.reviews[0]), summary)

    assert prompt.startswith("# Code Review Summary\n")
    assert "- **Status**: CHANGES_REQUESTED" in prompt
    assert "## Review Comments\nNeeds tests\n" in prompt
    assert "The reviewer has requested changes" in prompt


def test_approved_prompt(summary) -> None:
    prompt = format_prompt(ReviewFeedback(summary.reviews[1]), summary)
    assert "## Review Comments" not in prompt
    assert "No action needed" in prompt


def test_feedback_list(summary) -> None:
    text = click.unstyle(render_feedback_list(summary))

    assert "PR #7: Add parser" in text
    assert "Reviews (2):" in text
    assert "bob (CHANGES_REQUESTED)" in text
    assert "[1] parser.py:14 - @bob" in text
    assert "[2] (general):0 - @dave" in text
    assert "Total feedback items: 3" in text


def test_feedback_list_without_feedback() -> None:
    empty = PRReviewSummary(pr_number=1, pr_title="T")
    text = click.unstyle(render_feedback_list(empty))
    assert "No reviews or comments yet." in text
    assert "Total feedback items: 0" in text
