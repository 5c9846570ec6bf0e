"""Multi-stage extractor — three focused completion calls combined into one result.

Purpose:
  The older extraction strategy, kept selectable for comparison. Basic info,
  pricing and requirements are requested concurrently; each stage that fails
  degrades to an empty result so the other two still contribute.

Business Rules:
  - Sender confidence 0.9 when a name or company was found, else 0.5
  - Websites 0.8; the original outreach website 0.9 (the email-domain
    fallback is applied by postprocess_extraction)
  - Offerings 0.8; listicle positions 0.7; per-website prices 0.9
  - All prompts ask for integer cents, so amounts are never rescaled
  - All three stages failing raises ExtractionError

Called by: services/extraction.py (get_extractor)
Depends on: utils/llm_client.py, services/offer_extractor.py (postprocess_extraction)
"""

import asyncio

from loguru import logger

from publisher_intake.exceptions import ExtractionError
from publisher_intake.schemas.parsed_email import ParsedEmail
from publisher_intake.services.email_cleaner import clean_email_content
from publisher_intake.services.offer_extractor import (
    MAX_BODY_CHARS,
    as_list,
    identify_missing_fields,
    overall_confidence,
    postprocess_extraction,
)
from publisher_intake.utils.llm_client import completion_json

SYSTEM_PROMPT = "You extract data from publisher emails. Return ONLY valid JSON, no markdown."

BASIC_INFO_PROMPT = """\
The person replying is: {sender}
Subject: {subject}

Reply:
{body}

We contacted {sender} about publishing on THEIR website. Extract:
1. Their name (signature or body)
2. Their company / business name
3. Their website(s): sites they own or sell placements on. The domain \
{email_domain} is likely theirs unless it is a free-mail provider. Do NOT \
include third-party sites mentioned in passing.

Return JSON:
{{"name": "string or null", "company": "string or null", \
"phone": "string or null", "websites": ["domain1.com"]}}"""

PRICING_PROMPT = """\
Extract ALL pricing from this publisher reply. Every price is an INTEGER \
number of cents: "$250" → 25000, "$99.50" → 9950.

Reply:
{body}

Return JSON:
{{
  "guest_post_price": integer cents or null,
  "link_insertion_price": integer cents or null,
  "sponsored_review_price": integer cents or null,
  "additional_link_price": integer cents or null,
  "currency": "USD",
  "turnaround_days": integer or null (do not guess),
  "express_price": integer cents or null,
  "express_days": integer or null,
  "max_links_included": integer or null,
  "listicle_pricing": [{{"position": 1, "price": 99900}}],
  "niche_pricing": [{{"niche": "casino", "price": integer cents or null, \
"surcharge": integer cents or null}}],
  "bulk_discounts": [{{"quantity": 5, "discount_percent": 10}}],
  "package_deals": [{{"quantity": 3, "total_price": 50000}}],
  "per_website_pricing": [{{"website": "domain.com", "guest_post_price": integer cents \
or null, "link_insertion_price": integer cents or null}}],
  "raw_pricing_text": "exact pricing text from the reply"
}}"""

REQUIREMENTS_PROMPT = """\
Extract content requirements and restrictions from this publisher reply.

Reply:
{body}

Return JSON:
{{
  "accepts_dofollow": true/false/null,
  "max_links": integer or null,
  "prohibited_topics": ["casino", "cbd"],
  "min_word_count": integer or null,
  "max_word_count": integer or null,
  "requires_author_bio": true/false/null,
  "requires_images": true/false/null,
  "no_link_exchanges": true/false/null,
  "guidelines": "string or null",
  "raw_requirements_text": "exact requirements text from the reply"
}}"""


def _present(v) -> bool:
    return v is not None and v != ""


class MultiStageExtractor:
    """Three concurrent completion calls: basic info, pricing, requirements."""

    name = "multi_stage"

    async def extract(
        self,
        email_body: str,
        sender_email: str,
        subject: str | None = None,
        original_website: str | None = None,
    ) -> ParsedEmail:
        body = clean_email_content(email_body)[:MAX_BODY_CHARS]
        sender = (sender_email or "").strip().lower()
        email_domain = sender.split("@")[-1] if "@" in sender else ""

        prompts = [
            BASIC_INFO_PROMPT.format(
                sender=sender, subject=subject or "", body=body, email_domain=email_domain or "unknown"
            ),
            PRICING_PROMPT.format(body=body),
            REQUIREMENTS_PROMPT.format(body=body),
        ]
        results = await asyncio.gather(
            *(completion_json(p, system=SYSTEM_PROMPT, max_tokens=2048) for p in prompts),
            return_exceptions=True,
        )

        stages = []
        errors = []
        for stage_name, result in zip(("basic_info", "pricing", "requirements"), results):
            if isinstance(result, Exception):
                logger.warning("Multi-stage extraction: {} stage failed: {}", stage_name, result)
                errors.append(f"{stage_name} stage failed: {result}")
                stages.append({})
            else:
                stages.append(result if isinstance(result, dict) else {})
        if len(errors) == 3:
            raise ExtractionError(f"all extraction stages failed for {sender}: {errors[0]}")

        raw = self._combine(*stages, sender=sender, original_website=original_website)
        raw["errors"] = errors
        return postprocess_extraction(raw, sender, strategy=self.name)

    def _combine(self, basic: dict, pricing: dict, requirements: dict, *, sender, original_website) -> dict:
        name = basic.get("name") or None
        company = basic.get("company") or None
        raw_sender = {
            "name": name,
            "company": company,
            "phone": basic.get("phone"),
            "confidence": 0.9 if (name or company) else 0.5,
        }

        websites = [{"domain": d, "confidence": 0.8} for d in as_list(basic.get("websites")) if isinstance(d, str)]
        if original_website:
            websites.append({"domain": original_website, "confidence": 0.9})

        attributes = {}
        for key in ("accepts_dofollow", "max_links", "requires_author_bio", "requires_images", "no_link_exchanges", "guidelines"):
            if _present(requirements.get(key)):
                attributes[key] = requirements[key]
        if requirements.get("prohibited_topics"):
            attributes["restrictions"] = {"niches": [str(t).lower() for t in as_list(requirements["prohibited_topics"])]}
        if _present(pricing.get("max_links_included")):
            attributes.setdefault("links_included", pricing["max_links_included"])
        if _present(pricing.get("additional_link_price")):
            attributes["additional_link_price"] = pricing["additional_link_price"]
        if _present(requirements.get("raw_requirements_text")):
            attributes["raw_requirements_text"] = requirements["raw_requirements_text"]

        common = {
            "currency": pricing.get("currency") or "USD",
            "turnaround_days": pricing.get("turnaround_days"),
            "min_word_count": requirements.get("min_word_count"),
            "max_word_count": requirements.get("max_word_count"),
        }

        offerings = []
        for offering_type in ("guest_post", "link_insertion", "sponsored_review"):
            price = pricing.get(f"{offering_type}_price")
            if not _present(price):
                continue
            offering = {
                "offering_type": offering_type,
                "base_price": price,
                "attributes": dict(attributes),
                "confidence": 0.8,
                **common,
            }
            if offering_type == "guest_post":
                offering["express_price"] = pricing.get("express_price")
                offering["express_days"] = pricing.get("express_days")
                offering["pricing_rules"] = self._rules(pricing)
            offerings.append(offering)

        for listicle in as_list(pricing.get("listicle_pricing")):
            if not isinstance(listicle, dict) or not _present(listicle.get("price")):
                continue
            position = listicle.get("position")
            offerings.append({
                "offering_type": "listicle_placement",
                "offering_name": f"Position {position}" if position else None,
                "base_price": listicle["price"],
                "position": position,
                "confidence": 0.7,
                **common,
            })

        for site in as_list(pricing.get("per_website_pricing")):
            if not isinstance(site, dict) or not site.get("website"):
                continue
            for offering_type in ("guest_post", "link_insertion"):
                price = site.get(f"{offering_type}_price")
                if not _present(price):
                    continue
                offerings.append({
                    "offering_type": offering_type,
                    "offering_name": site["website"],
                    "base_price": price,
                    "website_domain": site["website"],
                    "attributes": dict(attributes),
                    "confidence": 0.9,
                    **common,
                })

        raw = {
            "sender": raw_sender,
            "websites": websites,
            "offerings": offerings,
            "raw_pricing_text": pricing.get("raw_pricing_text"),
            "extraction_notes": requirements.get("guidelines"),
        }
        # Confidence and missing fields are computed over the coerced result
        parsed = postprocess_extraction(raw, sender, strategy=self.name)
        raw["overall_confidence"] = overall_confidence(parsed.sender, parsed.websites, parsed.offerings)
        raw["missing_fields"] = identify_missing_fields(parsed.sender, parsed.websites, parsed.offerings)
        return raw

    @staticmethod
    def _rules(pricing: dict) -> list[dict]:
        rules = []
        for niche in as_list(pricing.get("niche_pricing")):
            if not isinstance(niche, dict) or not niche.get("niche"):
                continue
            actions = {}
            if _present(niche.get("surcharge")):
                actions["surcharge_cents"] = niche["surcharge"]
            if _present(niche.get("price")):
                actions["price_cents"] = niche["price"]
            rules.append({
                "rule_type": "niche_surcharge",
                "rule_name": f"{niche['niche']} niche",
                "conditions": {"niches": [str(niche["niche"]).lower()]},
                "actions": actions,
            })
        for bulk in as_list(pricing.get("bulk_discounts")):
            if not isinstance(bulk, dict) or not bulk.get("quantity"):
                continue
            rules.append({
                "rule_type": "bulk_discount",
                "rule_name": f"{bulk['quantity']}+ posts",
                "conditions": {"min_quantity": bulk["quantity"]},
                "actions": {"discount_percent": bulk.get("discount_percent")},
            })
        for deal in as_list(pricing.get("package_deals")):
            if not isinstance(deal, dict) or not deal.get("quantity"):
                continue
            rules.append({
                "rule_type": "package_deal",
                "rule_name": f"{deal['quantity']} post package",
                "conditions": {"quantity": deal["quantity"]},
                "actions": {"total_cents": deal.get("total_price")},
            })
        return rules
