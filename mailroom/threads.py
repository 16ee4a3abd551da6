"""Display grouping for a conversation's messages.

Consecutive messages from the same sender collapse into one group, and quoted
or forwarded history inside a body is folded behind a ``<details>`` toggle.
"""

import re
from typing import Any, Iterable, Optional

from mailroom.accounts import AttachmentLinker
from mailroom.html_utils import sanitize_html
from mailroom.models import Message, ThreadGroup

FOLDED_MARKER = 'data-mailroom-folded="true"'

PREVIOUS_MESSAGE_LABEL = "Show previous message"
FORWARDED_LABEL = "Show forwarded content"

_QUOTE_PATTERNS = [
    (re.compile(r"<blockquote\b", re.IGNORECASE), PREVIOUS_MESSAGE_LABEL),
    (
        re.compile(r"-{2,}\s*Forwarded message\s*-{2,}", re.IGNORECASE),
        FORWARDED_LABEL,
    ),
    (
        re.compile(r"From:\s.{0,300}?Sent:\s.{0,300}?To:\s.{0,500}?Subject:", re.IGNORECASE | re.DOTALL),
        FORWARDED_LABEL,
    ),
    (
        re.compile(r"-+\s*Original Message\s*-+", re.IGNORECASE),
        PREVIOUS_MESSAGE_LABEL,
    ),
    (
        re.compile(r"\bOn\s[^<>\n]{1,200}?\swrote:", re.IGNORECASE),
        PREVIOUS_MESSAGE_LABEL,
    ),
    (
        re.compile(r"(?:<br\s*/?>|\n)\s*&gt;", re.IGNORECASE),
        PREVIOUS_MESSAGE_LABEL,
    ),
]

_TAG = re.compile(r"<[^>]+>")
_BLOCKQUOTE_TAG = re.compile(r"<(/?)blockquote\b[^>]*>", re.IGNORECASE)


def _has_visible_text(fragment: str) -> bool:
    return bool(_TAG.sub("", fragment).strip())


def blockquote_spans(body_html: str) -> list[tuple[int, int]]:
    """``(start, end)`` of each top-level blockquote; unclosed ones run to the end."""
    spans = []
    depth = 0
    start = 0
    for match in _BLOCKQUOTE_TAG.finditer(body_html):
        if not match.group(1):
            if depth == 0:
                start = match.start()
            depth += 1
        elif depth > 0:
            depth -= 1
            if depth == 0:
                spans.append((start, match.end()))
    if depth > 0:
        spans.append((start, len(body_html)))
    return spans


def find_quoted_start(body_html: str) -> Optional[tuple[int, str]]:
    """Offset where trailing quoted history begins, with its summary label.

    Quotes followed by more of the author's own text are inline replies and
    stay visible, so only matches after the last such quote count.
    """
    floor = 0
    for start, end in blockquote_spans(body_html):
        if _has_visible_text(body_html[end:]):
            floor = end

    best: Optional[tuple[int, str]] = None
    for pattern, label in _QUOTE_PATTERNS:
        match = pattern.search(body_html, floor)
        if match and (best is None or match.start() < best[0]):
            best = (match.start(), label)
    return best


def fold_quoted_content(body_html: Optional[str]) -> str:
    """Wrap trailing quoted/forwarded content in a collapsible block.

    Nothing is removed, and folding an already folded body is a no-op.
    """
    if not body_html:
        return body_html or ""
    if FOLDED_MARKER in body_html:
        return body_html

    found = find_quoted_start(body_html)
    if found is None:
        return body_html
    start, label = found

    main, quoted = body_html[:start], body_html[start:]
    if not _has_visible_text(main):
        # Nothing would remain visible.
        return body_html

    return (
        f"{main}<details class=\"mailroom-quoted\" {FOLDED_MARKER}>"
        f"<summary>{label}</summary>"
        f"<div class=\"mailroom-quoted-body\">{quoted}</div></details>"
    )


def group_messages(
    messages: Iterable[Message], owner_address: Optional[str] = None
) -> list[ThreadGroup]:
    """Split messages into maximal runs of the same ``from_address``."""
    owner = owner_address.lower() if owner_address else None
    groups: list[ThreadGroup] = []
    for message in messages:
        if groups and groups[-1].sender_address == message.from_address:
            groups[-1].messages.append(message)
            continue
        groups.append(
            ThreadGroup(
                sender_address=message.from_address,
                messages=[message],
                is_mine=owner is not None and message.from_address == owner,
            )
        )
    return groups


class ThreadRenderer:
    """Builds display-ready groups: sanitized, folded bodies and attachment URLs."""

    def __init__(self, linker: AttachmentLinker):
        self.linker = linker

    def render_message(self, message: Message) -> dict[str, Any]:
        data = message.to_dict()
        body = sanitize_html(
            message.body_html or message.snippet,
            content_ids=self.linker.content_ids(message.attachments),
            url_for=self.linker.url_for,
        )
        data["bodyHtml"] = fold_quoted_content(body)
        for attachment, rendered in zip(message.attachments, data["attachments"]):
            rendered["url"] = self.linker.url_for(attachment.locator)
        return data

    def render(
        self, messages: list[Message], owner_address: Optional[str] = None
    ) -> list[ThreadGroup]:
        groups = group_messages(messages, owner_address)
        for group in groups:
            group.messages = [self.render_message(m) for m in group.messages]
        return groups
