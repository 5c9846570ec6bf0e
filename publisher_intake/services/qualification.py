"""Qualification filter — decide whether a reply is a genuine paid offer.

Deterministic text rules, no completion call. First matching rule wins, with
one override: any pricing mention in the reply qualifies the email before
rejection, link-swap or vague-interest language is considered.

Decision order:
  1. reply-only text (signatures and quoted outreach cut)
  2. no offerings → no_offerings; no positive base price → no_pricing
  3. pricing token in reply → qualified
  4. rejection phrase → rejection
  5. link-swap phrase → link_swap
  6. vague-interest phrase with no concrete amount → vague_response
  7. qualified
"""

import re
from dataclasses import dataclass

from publisher_intake.schemas.parsed_email import ParsedEmail
from publisher_intake.services.email_cleaner import extract_reply_text

PRICING_RE = re.compile(
    r"\b(?:prices?|pricing|priced|costs?|fees?|charges?|charging|rates?|payments?|"
    r"pay|invoices?|paypal|usd|eur|gbp)\b|[$€£¥]",
    re.IGNORECASE,
)

REJECTION_PHRASES = (
    "no thanks",
    "no thank you",
    "not interested",
    "pass on this",
    "we'll pass",
    "we will pass",
    "remove me",
    "remove us",
    "unsubscribe",
    "stop emailing",
    "do not contact",
    "don't contact",
    "not accepting",
    "we don't accept guest posts",
    "we do not accept guest posts",
)

LINK_SWAP_PHRASES = (
    "in return",
    "in exchange",
    "reciprocal",
    "link swap",
    "link exchange",
    "swap links",
    "exchange links",
    "free link",
    "free of charge",
    "no cost",
    "for free",
)

VAGUE_PHRASES = (
    "sounds good",
    "let me know",
    "tell me more",
    "more details",
    "more info",
    "interested",
    "get back to you",
    "what do you have in mind",
)

_AMOUNT_RE = re.compile(r"\d")


@dataclass
class QualificationResult:
    is_qualified: bool
    reason: str | None = None
    notes: str | None = None

    @property
    def status(self) -> str:
        return "qualified" if self.is_qualified else "disqualified"


def _find_phrase(text: str, phrases) -> str | None:
    for phrase in phrases:
        if phrase in text:
            return phrase
    return None


def qualify(email_body: str, parsed: ParsedEmail) -> QualificationResult:
    reply = extract_reply_text(email_body)
    lowered = reply.lower()

    if not parsed.offerings:
        return QualificationResult(False, "no_offerings", "no offerings extracted")
    if not parsed.has_paid_offering():
        return QualificationResult(False, "no_pricing", "no offering with a positive base price")

    m = PRICING_RE.search(reply)
    if m:
        return QualificationResult(True, notes=f"pricing mention: {m.group(0)!r}")

    phrase = _find_phrase(lowered, REJECTION_PHRASES)
    if phrase:
        return QualificationResult(False, "rejection", f"rejection phrase: {phrase!r}")

    phrase = _find_phrase(lowered, LINK_SWAP_PHRASES)
    if phrase:
        return QualificationResult(False, "link_swap", f"link swap phrase: {phrase!r}")

    phrase = _find_phrase(lowered, VAGUE_PHRASES)
    if phrase and not _AMOUNT_RE.search(reply):
        return QualificationResult(False, "vague_response", f"vague reply: {phrase!r}")

    return QualificationResult(True, notes="paid offering extracted")
