"""
Entity and Markup Extraction

Pure regex helpers shared by the Slack and GitHub normalizers:
- mentions, URLs and code blocks from message text
- platform markup to plain text
"""

import re
import string
from typing import List, Set, Tuple

from threadmine.models.message import CodeBlock, CodeBlockKind

# @name not preceded by a letter, digit or dot, so e-mail addresses never match
MENTION_PATTERN = re.compile(r"(?<![A-Za-z0-9.])@([A-Za-z0-9][\w-]*(?:\.[\w-]+)*)")

# Bare or Slack bracketed (<https://...|label>) URLs
URL_PATTERN = re.compile(r"<?(https?://[^\s<>|]+)")
URL_TRAILING_CHARS = ".,;:!?'\"*_"

FENCED_PATTERN = re.compile(r"(```|~~~)(?:([\w+#.-]+)[ \t]*\n)?(.*?)\1", re.DOTALL)
INLINE_PATTERN = re.compile(r"`([^`\n]{1,200})`")
HTML_CODE_PATTERN = re.compile(r"<code[^>]*>(.*?)</code>", re.DOTALL | re.IGNORECASE)
CODE_ISH_PATTERN = re.compile(r"[\s" + re.escape(string.punctuation) + r"]")

# Slack markup
SLACK_USER_PATTERN = re.compile(r"<@([A-Z0-9]+)(?:\|([^>]+))?>")
SLACK_CHANNEL_PATTERN = re.compile(r"<#([A-Z0-9]+)(?:\|([^>]*))?>")
SLACK_LINK_PATTERN = re.compile(r"<((?:https?|mailto):[^|>]+)(?:\|([^>]+))?>")
SLACK_SPECIAL_PATTERN = re.compile(r"<!([^|>]+)(?:\|([^>]+))?>")

HTML_COMMENT_PATTERN = re.compile(r"<!--.*?-->", re.DOTALL)
# An escaped <...> span, an escaped entity (&amp;lt;), or a plain entity
ESCAPED_PATTERN = re.compile(
    r"&lt;((?:(?!&lt;|&gt;).)*?)&gt;|&amp;(?=(?:lt|gt|amp);)|&(lt|gt|amp);", re.DOTALL
)
ENTITIES = {"lt": "<", "gt": ">", "amp": "&"}

SLACK_MARKUP_PATTERNS = (
    SLACK_USER_PATTERN,
    SLACK_CHANNEL_PATTERN,
    SLACK_LINK_PATTERN,
    SLACK_SPECIAL_PATTERN,
)


def extract_mentions(text: str) -> Set[str]:
    """Extract @name mentions, ignoring e-mail addresses."""
    if not text:
        return set()
    return set(MENTION_PATTERN.findall(text))


def _trim_url(url: str) -> str:
    """Drop trailing punctuation and unbalanced closing brackets."""
    while url:
        last = url[-1]
        if last in URL_TRAILING_CHARS:
            url = url[:-1]
        elif last == ")" and url.count(")") > url.count("("):
            url = url[:-1]
        elif last == "]" and url.count("]") > url.count("["):
            url = url[:-1]
        else:
            break
    return url


def extract_urls(text: str) -> List[str]:
    """
    Extract http(s) URLs in first-seen order, without duplicates.

    Recognizes both bare URLs and Slack's <url> / <url|label> form.
    """
    if not text:
        return []

    urls = []
    seen = set()
    for match in URL_PATTERN.finditer(text):
        url = _trim_url(match.group(1))
        if len(url) <= len("https://") or url in seen:
            continue
        seen.add(url)
        urls.append(url)
    return urls


def extract_code_blocks(text: str) -> List[CodeBlock]:
    """
    Extract code blocks from message content.

    Supports:
    - Fenced blocks: ```code``` or ~~~code~~~, with an optional language tag
    - Inline code: `code` (only when it contains punctuation or whitespace)
    - HTML code tags: <code>code</code>

    Returns:
        Blocks in the order fenced, inline, html
    """
    if not text:
        return []

    blocks: List[CodeBlock] = []

    for match in FENCED_PATTERN.finditer(text):
        code = match.group(3).strip()
        if code:
            blocks.append(
                CodeBlock(
                    language=match.group(2) or None,
                    code=code,
                    kind=CodeBlockKind.FENCED,
                )
            )

    # Inline spans inside fenced blocks were already captured above
    unfenced = FENCED_PATTERN.sub(" ", text)

    for match in INLINE_PATTERN.finditer(unfenced):
        code = match.group(1).strip()
        if code and CODE_ISH_PATTERN.search(code):
            blocks.append(CodeBlock(code=code, kind=CodeBlockKind.INLINE))

    for match in HTML_CODE_PATTERN.finditer(unfenced):
        code = match.group(1).strip()
        if code:
            blocks.append(CodeBlock(code=code, kind=CodeBlockKind.HTML))

    return blocks


def _unescape_entities(text: str, markup: Tuple[re.Pattern, ...] = ()) -> str:
    """
    Unescape &lt; &gt; &amp; without creating text a second pass would change.

    An escaped span that would unescape into markup (a Slack link, an HTML
    comment) and an escaped entity such as "&amp;lt;" are left as they are.
    """

    def replace(match: re.Match) -> str:
        inner = match.group(1)
        if inner is not None:
            candidate = f"<{_unescape_entities(inner, markup)}>"
            if any(pattern.fullmatch(candidate) for pattern in markup):
                return match.group(0)
            return candidate
        if match.group(2):
            return ENTITIES[match.group(2)]
        return match.group(0)

    return ESCAPED_PATTERN.sub(replace, text)


def normalize_slack_markup(text: str) -> str:
    """
    Convert Slack markup to plain text.

    <@U123|bob>            -> @bob   (or @U123 without a label)
    <#C123|general>        -> #general
    <https://x.io|docs>    -> docs (https://x.io)
    <https://x.io>         -> https://x.io
    <!here>                -> @here
    &lt; &gt; &amp;        -> < > &   (unless the result would read as markup)
    """
    if not text:
        return ""

    text = SLACK_USER_PATTERN.sub(lambda m: "@" + (m.group(2) or m.group(1)), text)
    text = SLACK_CHANNEL_PATTERN.sub(lambda m: "#" + (m.group(2) or m.group(1)), text)
    text = SLACK_LINK_PATTERN.sub(
        lambda m: f"{m.group(2)} ({m.group(1)})" if m.group(2) else m.group(1),
        text,
    )
    text = SLACK_SPECIAL_PATTERN.sub(
        lambda m: m.group(2) or "@" + m.group(1).split("^")[0], text
    )
    return _unescape_entities(text, SLACK_MARKUP_PATTERNS)


def normalize_github_markdown(text: str) -> str:
    """
    Convert GitHub Markdown to the canonical content form.

    Markdown is kept so fenced code survives extraction; only HTML comments
    (issue template hints) are removed and entities unescaped.
    """
    if not text:
        return ""

    text = HTML_COMMENT_PATTERN.sub("", text)
    return _unescape_entities(text, (HTML_COMMENT_PATTERN,)).strip()
