import html
import re
from typing import Callable, Iterable, Optional

TRACKING_HOSTS = (
    "vialoops.com",
    "mandrillapp.com",
    "sendgrid.net",
    "mailchimp.com",
    "hubspot.com",
    "sparkpostmail.com",
)

_BLOCK_TAGS = re.compile(
    r"<\s*(br|/p|/div|/tr|/li|/h[1-6]|/blockquote)\b[^>]*>", re.IGNORECASE
)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def strip_scripts(html_content: str) -> str:
    html_content = re.sub(
        r"<script[^>]*>.*?</script>", "", html_content, flags=re.DOTALL | re.IGNORECASE
    )
    return re.sub(
        r"<style[^>]*>.*?</style>", "", html_content, flags=re.DOTALL | re.IGNORECASE
    )


def html_to_text(html_content: Optional[str]) -> str:
    """Plain-text rendering of an HTML body; never contains markup."""
    if not html_content:
        return ""
    text = strip_scripts(html_content)
    text = re.sub(r"<!--.*?-->", "", text, flags=re.DOTALL)
    text = _BLOCK_TAGS.sub("\n", text)
    text = _TAG.sub(" ", text)
    text = html.unescape(text)
    lines = [_WHITESPACE.sub(" ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def preview_text(html_content: Optional[str], length: int = 120) -> str:
    text = _WHITESPACE.sub(" ", html_to_text(html_content)).strip()
    return text[:length]


def remove_tracking_pixels(html_content: str) -> str:
    for host in TRACKING_HOSTS:
        html_content = re.sub(
            rf"<img[^>]+{re.escape(host)}[^>]*>", "", html_content, flags=re.IGNORECASE
        )
    html_content = re.sub(
        r"<img[^>]+(width=[\"']?1[\"']?|height=[\"']?1[\"']?)(?![0-9])[^>]*>",
        "",
        html_content,
        flags=re.IGNORECASE,
    )
    return re.sub(r"<div>\s*</div>", "", html_content)


def replace_cid_references(
    html_content: str,
    content_ids: Iterable[tuple[str, str]],
) -> str:
    """Point ``cid:`` references at resolved attachment URLs.

    ``content_ids`` yields ``(content_id, url)`` pairs.
    """
    for content_id, url in content_ids:
        cid = content_id.strip("<>")
        if not cid:
            continue
        html_content = re.sub(
            rf"cid:{re.escape(cid)}", lambda _: url, html_content, flags=re.IGNORECASE
        )
    return html_content


def sanitize_html(
    html_content: Optional[str],
    content_ids: Iterable[tuple[str, str]] = (),
    url_for: Optional[Callable[[str], str]] = None,
) -> str:
    if not html_content:
        return ""
    html_content = strip_scripts(html_content)
    html_content = re.sub(
        r"\son\w+\s*=", " data-removed=", html_content, flags=re.IGNORECASE
    )
    html_content = re.sub(
        r"(href|src)\s*=\s*([\"'])\s*javascript:[^\"']*\2",
        r'\1="#"',
        html_content,
        flags=re.IGNORECASE,
    )
    html_content = remove_tracking_pixels(html_content)
    html_content = replace_cid_references(html_content, content_ids)
    if url_for is not None:
        html_content = re.sub(
            r"(src=[\"'])(/uploads[^\"']*)",
            lambda m: m.group(1) + url_for(m.group(2)),
            html_content,
            flags=re.IGNORECASE,
        )
    return html_content
