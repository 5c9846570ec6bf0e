"""Offer Extractor — single-call schema extraction of publisher offers.

Purpose:
  Turn a publisher's reply into a ParsedEmail with one completion call. The
  prompt embeds the full offering / pricing-rule schema, explicit cents
  conversion rules and worked examples, and requests strict JSON.

Business Rules:
  - Prices are integer cents: "$250" → 25000. Integer values coming back are
    stored exactly; nothing downstream rescales them.
  - Every website domain goes through normalize_domain (raw lowercase string
    when normalization fails). With no website in the reply, the sender's
    email domain is used at 0.6 unless it is a free-mail provider.
  - Every offering leaves here fully defaulted; unknown offering types are
    dropped with a note in ParsedEmail.errors
  - Pricing rules default to priority 10, not cumulative, auto-applied
  - Confidence values are clamped into [0, 1]
  - Only the publisher's reply is extracted; quoted outreach is cut first

Called by: services/extraction.py (get_extractor), services/legacy_extractor.py
Depends on: utils/llm_client.py, utils/domain.py, services/email_cleaner.py
"""

import re

from loguru import logger
from pydantic import ValidationError

from publisher_intake.exceptions import ExtractionError
from publisher_intake.models.offerings import AVAILABILITY_STATES, OFFERING_TYPES
from publisher_intake.schemas.parsed_email import (
    ExtractedOffering,
    ExtractedPricingRule,
    ExtractedWebsite,
    ParsedEmail,
    SenderInfo,
)
from publisher_intake.services.email_cleaner import clean_email_content
from publisher_intake.utils import safe_float, safe_int
from publisher_intake.utils.domain import normalize_domain, normalize_or_raw
from publisher_intake.utils.llm_client import completion_json

MAX_BODY_CHARS = 8000
EMAIL_DOMAIN_CONFIDENCE = 0.6
FREE_MAIL_DOMAINS = frozenset({
    "gmail.com",
    "googlemail.com",
    "yahoo.com",
    "outlook.com",
    "hotmail.com",
    "live.com",
    "aol.com",
    "icloud.com",
    "protonmail.com",
})

SYSTEM_PROMPT = """\
You extract structured offer data from publisher replies for a guest-posting \
marketplace.

Context: our outreach team asked a publisher about placing content on their \
website(s). The publisher replied. Extract ONLY what the publisher explicitly \
states in the reply. Never invent prices, domains or turnaround times.

Offering types (use exactly these values):
- guest_post: a new article written for / submitted to their site
- link_insertion: a link added to an existing article (niche edit)
- listicle_placement: a position inside a "best X" list article
- sponsored_review: a paid review of a product or service

Money rules (CRITICAL):
- Every price is an INTEGER number of cents
- "$250" = 25000, "$99.50" = 9950, "€1,200" = 120000, "150 USD" = 15000
- currency is an ISO code: USD, EUR, GBP. Default USD when only "$" is shown

Pricing rules:
- Bulk discounts: "10% off for 5+ posts" → rule_type "bulk_discount", \
conditions {"min_quantity": 5}, actions {"discount_percent": 10}
- Niche upcharges: "casino/CBD +$100" → rule_type "niche_surcharge", \
conditions {"niches": ["casino", "cbd"]}, actions {"surcharge_cents": 10000}
- Listicle positions: "1st position $999" → rule_type "position_pricing", \
conditions {"position": 1}, actions {"price_cents": 99900}
- Packages: "3 posts for $500" → rule_type "package_deal", \
conditions {"quantity": 3}, actions {"total_cents": 50000}
- Express delivery goes on the offering itself (express_price, express_days)

Restrictions:
- Forbidden niches ("no casino, CBD, adult") go in attributes.restrictions.niches
- Link policy (dofollow, number of links included) goes in attributes

Return ONLY valid JSON matching this exact structure:
{
  "sender": {"name": "string or null", "company": "string or null", \
"phone": "string or null"},
  "websites": [{"domain": "example.com", "confidence": 0.0-1.0}],
  "offerings": [
    {
      "offering_type": "guest_post|link_insertion|listicle_placement|sponsored_review",
      "offering_name": "string or null",
      "base_price": integer cents,
      "currency": "USD",
      "turnaround_days": integer or null,
      "current_availability": "available|limited|unavailable|pending_verification",
      "express_price": integer cents or null,
      "express_days": integer or null,
      "min_word_count": integer or null,
      "max_word_count": integer or null,
      "niches": ["string"],
      "languages": ["en"],
      "attributes": {"restrictions": {"niches": []}, "dofollow": true, "links_included": 1},
      "website_domain": "domain this price applies to, or null for all",
      "pricing_rules": [
        {"rule_type": "string", "rule_name": "string", "description": "string", \
"conditions": {}, "actions": {}}
      ],
      "confidence": 0.0-1.0
    }
  ],
  "pricing_rules": [
    {"for_offering_type": "guest_post", "rule_type": "string", "rule_name": "string", \
"description": "string", "conditions": {}, "actions": {}}
  ],
  "overall_confidence": 0.0-1.0,
  "missing_fields": ["string"],
  "extraction_notes": "string or null",
  "raw_pricing_text": "exact pricing text from the reply or null"
}

Confidence reflects how explicitly the publisher stated each value. Use < 0.5 \
for vague replies, bounces, out-of-office messages or refusals."""

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_PRICE_JUNK_RE = re.compile(r"[^\d.\-]")
_REQUIREMENT_KEYS = {
    "forbidden_niches",
    "dofollow",
    "links_included",
    "content_guidelines",
    "requirements",
    "restrictions",
}


# ── Coercion helpers ─────────────────────────────────────────────────


def _clamp(v, default: float) -> float:
    f = safe_float(v)
    if f is None or f != f:
        return default
    return max(0.0, min(1.0, f))


def _cents(v) -> int | None:
    """Integer cents from model output. Integers pass through untouched."""
    if isinstance(v, bool) or v is None:
        return None
    if isinstance(v, int):
        return max(0, v)
    if isinstance(v, str):
        v = _PRICE_JUNK_RE.sub("", v)
        if not v:
            return None
    n = safe_int(v)
    if n is None:
        return None
    return max(0, n)


def as_list(v) -> list:
    """Model output that should be a list. A bare string or object becomes one item."""
    if isinstance(v, list):
        return v
    if isinstance(v, (str, dict)):
        return [v]
    return []


def _positive_int(v) -> int | None:
    n = safe_int(v)
    return n if n is not None and n > 0 else None


def _text(v) -> str | None:
    if v is None or isinstance(v, (dict, list)):
        return None
    s = str(v).strip()
    return s or None


def _str_list(v, lower: bool = False) -> list[str]:
    if isinstance(v, str):
        v = re.split(r"[,;/]", v)
    if not isinstance(v, list):
        return []
    out = []
    for item in v:
        s = _text(item)
        if s:
            s = s.lower() if lower else s
            if s not in out:
                out.append(s)
    return out


def _domain(v) -> str | None:
    raw = _text(v)
    if not raw:
        return None
    return normalize_or_raw(raw)


def _coerce_rule(item, default_type: str, errors: list[str]) -> ExtractedPricingRule | None:
    if not isinstance(item, dict):
        return None
    rule_type = _text(item.get("rule_type"))
    if not rule_type:
        errors.append("pricing rule without rule_type dropped")
        return None
    priority = safe_int(item.get("priority"))
    for_type = item.get("for_offering_type")
    if for_type not in OFFERING_TYPES:
        for_type = default_type
    try:
        return ExtractedPricingRule(
            for_offering_type=for_type,
            rule_type=rule_type.lower().replace(" ", "_"),
            rule_name=_text(item.get("rule_name")) or rule_type,
            description=_text(item.get("description")),
            conditions=item.get("conditions") if isinstance(item.get("conditions"), dict) else {},
            actions=item.get("actions") if isinstance(item.get("actions"), dict) else {},
            priority=10 if priority is None else priority,
            is_cumulative=bool(item.get("is_cumulative", False)),
            auto_apply=bool(item.get("auto_apply", True)),
        )
    except ValidationError as e:
        errors.append(f"pricing rule {rule_type!r} invalid: {e.error_count()} errors")
        return None


def _coerce_offering(item, errors: list[str]) -> ExtractedOffering | None:
    if not isinstance(item, dict):
        return None
    offering_type = _text(item.get("offering_type") or item.get("type"))
    offering_type = offering_type.lower() if offering_type else None
    if offering_type not in OFFERING_TYPES:
        errors.append(f"unknown offering type {offering_type!r} dropped")
        return None

    base_price = _cents(item.get("base_price"))
    express_price = _cents(item.get("express_price"))
    currency = (_text(item.get("currency")) or "USD").upper()
    if not _CURRENCY_RE.match(currency):
        currency = "USD"
    availability = _text(item.get("current_availability"))
    if availability not in AVAILABILITY_STATES:
        availability = "pending_verification"

    attributes = dict(item.get("attributes") or {}) if isinstance(item.get("attributes"), dict) else {}
    for key in ("restrictions", "requirements", "raw_pricing_text", "position"):
        if item.get(key) not in (None, "", [], {}):
            attributes.setdefault(key, item[key])

    languages = _str_list(item.get("languages"), lower=True) or ["en"]
    rules = [
        r for r in (_coerce_rule(r, offering_type, errors) for r in as_list(item.get("pricing_rules")))
        if r is not None
    ]

    try:
        return ExtractedOffering(
            offering_type=offering_type,
            offering_name=_text(item.get("offering_name")),
            base_price=base_price or 0,
            currency=currency,
            turnaround_days=_positive_int(item.get("turnaround_days")),
            current_availability=availability,
            express_available=bool(express_price) or bool(item.get("express_available")),
            express_price=express_price,
            express_days=_positive_int(item.get("express_days")),
            min_word_count=_positive_int(item.get("min_word_count")),
            max_word_count=_positive_int(item.get("max_word_count")),
            niches=_str_list(item.get("niches"), lower=True),
            languages=languages,
            attributes=attributes,
            is_active=False,
            website_domain=_domain(item.get("website_domain")),
            pricing_rules=rules,
            confidence=_clamp(item.get("confidence"), 0.8),
        )
    except ValidationError as e:
        errors.append(f"offering {offering_type!r} invalid: {e.error_count()} errors")
        return None


def email_domain_website(sender_email: str) -> ExtractedWebsite | None:
    """The sender's own email domain as a low-confidence website guess."""
    email_domain = (sender_email or "").strip().lower().rpartition("@")[2]
    if not email_domain or email_domain in FREE_MAIL_DOMAINS:
        return None
    try:
        domain = normalize_domain(email_domain).domain
    except ValueError:
        logger.debug("Email domain {} is not a usable website", email_domain)
        return None
    return ExtractedWebsite(domain=domain, confidence=EMAIL_DOMAIN_CONFIDENCE)


def identify_missing_fields(
    sender: SenderInfo,
    websites: list[ExtractedWebsite],
    offerings: list[ExtractedOffering],
) -> list[str]:
    """Critical fields an operator would need to chase up."""
    missing = []
    if not sender.name and not sender.company:
        missing.append("contact_name_or_company")
    if not websites:
        missing.append("website")
    if not offerings:
        missing.append("pricing")
    elif not any(o.offering_type == "guest_post" for o in offerings):
        missing.append("guest_post_pricing")
    has_requirements = any(
        o.min_word_count or o.max_word_count or (_REQUIREMENT_KEYS & set(o.attributes))
        for o in offerings
    )
    if not has_requirements:
        missing.append("content_requirements")
    return missing


def overall_confidence(
    sender: SenderInfo,
    websites: list[ExtractedWebsite],
    offerings: list[ExtractedOffering],
) -> float:
    """Mean of all sub-confidences; 0.3 when only the sender contributed."""
    confidences = [sender.confidence]
    confidences += [w.confidence for w in websites]
    confidences += [o.confidence for o in offerings]
    if len(confidences) == 1:
        return 0.3
    return sum(confidences) / len(confidences)


# ── Validate-and-coerce boundary ─────────────────────────────────────


def postprocess_extraction(raw, sender_email: str, strategy: str = "schema") -> ParsedEmail:
    """Validate raw completion output into a fully-populated ParsedEmail.

    Raises:
        ExtractionError: raw is not a JSON object.
    """
    if not isinstance(raw, dict):
        raise ExtractionError(f"extraction output must be an object, got {type(raw).__name__}")

    errors: list[str] = [str(e) for e in as_list(raw.get("errors")) if e]

    sender_raw = raw.get("sender") if isinstance(raw.get("sender"), dict) else {}
    name = _text(sender_raw.get("name"))
    company = _text(sender_raw.get("company"))
    sender = SenderInfo(
        email=(sender_email or "").strip().lower(),
        name=name,
        company=company,
        phone=_text(sender_raw.get("phone")),
        confidence=_clamp(sender_raw.get("confidence"), 0.9 if (name or company) else 0.5),
    )

    websites: list[ExtractedWebsite] = []
    seen = set()
    for item in as_list(raw.get("websites")):
        domain_value = item.get("domain") if isinstance(item, dict) else item
        domain = _domain(domain_value)
        if not domain or domain in seen:
            continue
        seen.add(domain)
        conf = item.get("confidence") if isinstance(item, dict) else None
        websites.append(ExtractedWebsite(domain=domain, confidence=_clamp(conf, 0.8)))
    if not websites:
        fallback = email_domain_website(sender.email)
        if fallback is not None:
            logger.info("Using email domain as fallback website: {}", fallback.domain)
            websites.append(fallback)

    offerings = [
        o for o in (_coerce_offering(item, errors) for item in as_list(raw.get("offerings")))
        if o is not None
    ]
    raw_pricing_text = _text(raw.get("raw_pricing_text"))
    if raw_pricing_text:
        for o in offerings:
            o.attributes.setdefault("raw_pricing_text", raw_pricing_text)

    pricing_rules = [
        r for r in (_coerce_rule(item, "guest_post", errors) for item in as_list(raw.get("pricing_rules")))
        if r is not None
    ]

    missing = _str_list(raw.get("missing_fields"))
    for field in identify_missing_fields(sender, websites, offerings):
        if field not in missing:
            missing.append(field)

    if raw.get("overall_confidence") is None:
        confidence = overall_confidence(sender, websites, offerings)
    else:
        confidence = _clamp(raw.get("overall_confidence"), 0.5)

    return ParsedEmail(
        sender=sender,
        websites=websites,
        offerings=offerings,
        pricing_rules=pricing_rules,
        overall_confidence=confidence,
        missing_fields=missing,
        extraction_notes=_text(raw.get("extraction_notes")),
        errors=errors,
        strategy=strategy,
    )


# ── Strategy ─────────────────────────────────────────────────────────


class SchemaOfferExtractor:
    """One completion call with the full schema embedded in the prompt."""

    name = "schema"

    async def extract(self, email_body: str, sender_email: str, subject: str | None = None) -> ParsedEmail:
        body = clean_email_content(email_body)
        if not body:
            logger.warning("Empty reply body from {} — nothing to extract", sender_email)
            return postprocess_extraction({}, sender_email, strategy=self.name)

        prompt = f"Publisher email: {sender_email}\n"
        prompt += f"Subject: {subject}\n\n" if subject else "\n"
        prompt += f"Reply:\n{body[:MAX_BODY_CHARS]}"

        raw = await completion_json(prompt, system=SYSTEM_PROMPT, max_tokens=4096, temperature=0.1)
        parsed = postprocess_extraction(raw, sender_email, strategy=self.name)
        logger.info(
            "Extracted {} offerings / {} websites from {} (confidence {:.2f})",
            len(parsed.offerings),
            len(parsed.websites),
            sender_email,
            parsed.overall_confidence,
        )
        return parsed
