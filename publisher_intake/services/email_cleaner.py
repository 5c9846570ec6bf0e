"""Email content cleaner — reply-only text for extraction and qualification.

Strips HTML, then truncates at the first signature marker or quoted-reply
marker, whichever comes first:
  - signature: "--" at line start, or a sign-off line ("Best regards,",
    "Sincerely,", "Regards,", "Thanks,", "Cheers," …, "Sent from my …")
  - quoted reply: "On … wrote:", any line ending in "wrote:",
    "-----Original Message-----", lines starting with ">"

Sign-offs only count when they stand on their own line, so a reply that
opens with "Thanks, not interested" keeps its content. A sign-off may carry
a name ("Best regards, Dana Smith"); that form only counts once some reply
text precedes it.

Pure functions. Never raise: malformed input yields best-effort output.
"""

import html
import re

_HTML_BLOCK_RE = re.compile(r"<(style|script)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_HTML_BREAK_RE = re.compile(r"<br\s*/?>|</p>|</div>|</tr>|</li>", re.IGNORECASE)
_HTML_TAG_RE = re.compile(r"<[^>]+>")

_SIGN_OFF_WORDS = (
    r"(?:best|kind|warm|warmest)?[ \t]*regards",
    r"sincerely",
    r"thanks|thank you|many thanks",
    r"best|cheers",
)

# ", Dana" or ", Dana Smith" after a sign-off; capitalised words only
_NAME_TAIL = r"[ \t]*,[ \t]*[A-Z][\w.'-]*(?:[ \t]+[A-Z][\w.'-]*){0,2}"


def _sign_off(words: str, tail: str = "") -> re.Pattern:
    return re.compile(rf"^[ \t]*(?i:{words})[ \t]*[,.!]?{tail}[ \t]*$", re.MULTILINE)


_SIGNATURE_MARKERS = [
    re.compile(r"^[ \t]*--", re.MULTILINE),
    *(_sign_off(words) for words in _SIGN_OFF_WORDS),
    re.compile(r"^[ \t]*sent from my\b", re.IGNORECASE | re.MULTILINE),
]

# Only after some reply text, so an opening "Thanks, Mark" is not a cut point
_NAMED_SIGN_OFFS = [_sign_off(words, _NAME_TAIL) for words in _SIGN_OFF_WORDS]

_QUOTE_MARKERS = [
    re.compile(r"^[ \t]*On\s[^\n]*(?:\n[^\n]*)?\bwrote:", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^[^\n]*\bwrote:[ \t]*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^[ \t]*-{2,}\s*Original Message\s*-{2,}", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^[ \t]*>", re.MULTILINE),
]


def strip_html(raw: str) -> str:
    """Drop tags, style/script blocks and entities while keeping line breaks."""
    if not raw:
        return ""
    text = _HTML_BLOCK_RE.sub(" ", raw)
    text = _HTML_BREAK_RE.sub("\n", text)
    text = _HTML_TAG_RE.sub(" ", text)
    return html.unescape(text).replace("\xa0", " ")


def extract_reply_text(raw) -> str:
    """Reply-only portion of an email with line structure preserved."""
    if not isinstance(raw, str) or not raw:
        return ""
    text = strip_html(raw).replace("\r\n", "\n").replace("\r", "\n")

    cut = len(text)
    for pattern in _SIGNATURE_MARKERS + _QUOTE_MARKERS:
        m = pattern.search(text)
        if m and m.start() < cut:
            cut = m.start()
    for pattern in _NAMED_SIGN_OFFS:
        for m in pattern.finditer(text, 0, cut):
            if text[: m.start()].strip():
                cut = m.start()
                break
    return text[:cut].strip()


def clean_email_content(raw) -> str:
    """Reply-only text with whitespace runs collapsed to single spaces."""
    return re.sub(r"\s+", " ", extract_reply_text(raw)).strip()
