"""Review feedback: listing it and turning one item into an LLM prompt."""

from dataclasses import dataclass
from typing import List, Union

import click

from ..github.types import PRReviewSummary, Review, ReviewComment, ReviewState
from ..pretty import CHECK, CROSS, PENDING, bold, dim


@dataclass(frozen=True)
class ReviewFeedback:
    review: Review


@dataclass(frozen=True)
class CommentFeedback:
    comment: ReviewComment


FeedbackItem = Union[ReviewFeedback, CommentFeedback]

_STATE_ICONS = {
    ReviewState.APPROVED: click.style(CHECK, fg='green'),
    ReviewState.CHANGES_REQUESTED: click.style(CROSS, fg='red'),
    ReviewState.COMMENTED: click.style("●", fg='blue'),
    ReviewState.DISMISSED: click.style("○", dim=True),
    ReviewState.PENDING: click.style(PENDING, dim=True),
}


def _unknown(item: object) -> TypeError:
    return TypeError(f"Unknown feedback item: {type(item).__name__}")


def feedback_items(summary: PRReviewSummary) -> List[FeedbackItem]:
    """Reviews that have a body, then inline comments, in forge order."""
    items: List[FeedbackItem] = [ReviewFeedback(r) for r in summary.reviews if r.body]
    items.extend(CommentFeedback(c) for c in summary.comments)
    return items


def item_author(item: FeedbackItem) -> str:
    if isinstance(item, ReviewFeedback):
        return item.review.author
    if isinstance(item, CommentFeedback):
        return item.comment.author
    raise _unknown(item)


def item_text(item: FeedbackItem) -> str:
    """Raw feedback text."""
    if isinstance(item, ReviewFeedback):
        return item.review.body or ""
    if isinstance(item, CommentFeedback):
        return item.comment.body
    raise _unknown(item)


def item_label(item: FeedbackItem) -> str:
    if isinstance(item, ReviewFeedback):
        return f"review ({item.review.state.value}) by @{item.review.author}"
    if isinstance(item, CommentFeedback):
        c = item.comment
        line = c.display_line
        where = f"{c.path or '(general)'}:{line}" if line is not None else (c.path or "(general)")
        return f"{where} by @{c.author}"
    raise _unknown(item)


def _preview(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else f"{flat[:limit]}..."


def render_feedback_list(summary: PRReviewSummary) -> str:
    lines = [
        f"  {bold(f'PR #{summary.pr_number}:')} {summary.pr_title}",
        f"  {dim('Branch:')} {summary.branch}",
        f"  {dim('URL:')} {summary.pr_url}",
        "",
    ]

    if summary.reviews:
        lines.append(f"  {bold(f'Reviews ({len(summary.reviews)}):')}")
        for r in summary.reviews:
            lines.append(f"    {_STATE_ICONS[r.state]} {r.author} ({r.state.value})")
            if r.body:
                first_line = r.body.splitlines()[0]
                lines.append(f"      {dim(repr(_preview(first_line, 60)))}")
        lines.append("")

    if summary.comments:
        lines.append(f"  {bold(f'Inline Comments ({len(summary.comments)}):')}")
        for idx, c in enumerate(summary.comments, 1):
            line = c.display_line if c.display_line is not None else 0
            lines.append(f"    {click.style(f'[{idx}]', fg='yellow')} "
                         f"{c.path or '(general)'}:{line} - {dim('@' + c.author)}")
            lines.append(f"        {dim(_preview(c.body, 80))}")
        lines.append("")

    if not summary.reviews and not summary.comments:
        lines.append(f"  {dim('No reviews or comments yet.')}")
        lines.append("")

    lines.append(f"  {dim(f'Total feedback items: {summary.feedback_count()}')}")
    return "\n".join(lines)


def _context_lines(summary: PRReviewSummary) -> List[str]:
    return [
        "## Context",
        f"- **Pull Request**: {summary.pr_title} (#{summary.pr_number})",
        f"- **Branch**: {summary.branch}",
    ]


def _format_comment_prompt(comment: ReviewComment, summary: PRReviewSummary) -> str:
    out = ["# Code Review Feedback", ""]
    out.extend(_context_lines(summary))
    if comment.path:
        line = comment.display_line
        out.append(f"- **File**: {comment.path}:{line}" if line is not None else f"- **File**: {comment.path}")
    out.append(f"- **Reviewer**: {comment.author}")
    out.extend(["", "## Feedback", comment.body, ""])
    if comment.diff_hunk:
        out.extend(["## Code Context", "```diff", comment.diff_hunk, "```", ""])
    out.extend([
        "## Instructions",
        "Please address this code review feedback:",
        "1. Analyze the reviewer's concern",
        "2. Explain your approach to resolving it",
        "3. Provide the corrected code",
    ])
    return "\n".join(out) + "\n"


def _format_review_prompt(review: Review, summary: PRReviewSummary) -> str:
    out = ["# Code Review Summary", ""]
    out.extend(_context_lines(summary))
    out.append(f"- **Reviewer**: {review.author}")
    out.append(f"- **Status**: {review.state.value}")
    out.append("")
    if review.body:
        out.extend(["## Review Comments", review.body, ""])
    out.append("## Instructions")
    if review.state == ReviewState.CHANGES_REQUESTED:
        out.extend([
            "The reviewer has requested changes. Please:",
            "1. Review their feedback carefully",
            "2. Address each concern mentioned",
            "3. Explain how you've resolved the issues",
        ])
    elif review.state == ReviewState.APPROVED:
        out.append("The review has been approved. No action needed.")
    elif review.state == ReviewState.COMMENTED:
        out.extend([
            "The reviewer left comments. Please:",
            "1. Review their feedback",
            "2. Address any questions or suggestions",
        ])
    else:
        out.append("Please review and address any feedback.")
    return "\n".join(out) + "\n"


def format_prompt(item: FeedbackItem, summary: PRReviewSummary) -> str:
    """Markdown prompt asking an assistant to address one feedback item."""
    if isinstance(item, ReviewFeedback):
        return _format_review_prompt(item.review, summary)
    if isinstance(item, CommentFeedback):
        return _format_comment_prompt(item.comment, summary)
    raise _unknown(item)
