"""
test_legacy_extractor.py — Tests for services/legacy_extractor.py

Covers: concurrent three-stage extraction, stage failure degradation,
sub-field confidences, listicle and per-website offerings, pricing rules
built from the pricing stage, and the all-stages-failed error.

Called by: pytest
Depends on: publisher_intake.services.legacy_extractor
"""

from unittest.mock import AsyncMock, patch

import pytest

from publisher_intake.exceptions import CompletionError, ExtractionError
from publisher_intake.services.legacy_extractor import MultiStageExtractor

BASIC = {"name": "Dana Editor", "company": "TechBlog Media", "phone": None, "websites": ["www.techblog.io"]}
PRICING = {
    "guest_post_price": 25000,
    "link_insertion_price": 15000,
    "currency": "USD",
    "turnaround_days": 5,
    "express_price": 35000,
    "express_days": 2,
    "listicle_pricing": [{"position": 1, "price": 99900}, {"position": 2, "price": None}],
    "niche_pricing": [{"niche": "Casino", "surcharge": 10000}],
    "bulk_discounts": [{"quantity": 5, "discount_percent": 10}],
    "package_deals": [{"quantity": 3, "total_price": 50000}],
    "per_website_pricing": [{"website": "gadgets.io", "guest_post_price": 30000}],
    "raw_pricing_text": "GP $250, LI $150",
}
REQUIREMENTS = {
    "accepts_dofollow": True,
    "prohibited_topics": ["Casino", "CBD"],
    "min_word_count": 800,
    "guidelines": "Original content only",
}


def _stage_router(basic=BASIC, pricing=PRICING, requirements=REQUIREMENTS):
    """side_effect that answers each stage by recognising its prompt."""

    async def _answer(prompt, **kwargs):
        for marker, result in (
            ("Extract ALL pricing", pricing),
            ("content requirements", requirements),
            ("The person replying", basic),
        ):
            if marker in prompt:
                if isinstance(result, Exception):
                    raise result
                return result
        raise AssertionError("unexpected prompt")

    return _answer


async def _extract(side_effect, **kwargs):
    with patch(
        "publisher_intake.services.legacy_extractor.completion_json",
        new_callable=AsyncMock,
        side_effect=side_effect,
    ) as mock:
        parsed = await MultiStageExtractor().extract(
            "Guest posts $250, link insertions $150.\nBest regards,\nDana", "dana@techblog.io", "Re: hi", **kwargs
        )
    return parsed, mock


# ── Happy path ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_three_stages_issued():
    parsed, mock = await _extract(_stage_router())
    assert mock.await_count == 3
    assert parsed.strategy == "multi_stage"
    assert parsed.errors == []


@pytest.mark.asyncio
async def test_sender_and_website_confidences():
    parsed, _ = await _extract(_stage_router())
    assert parsed.sender.name == "Dana Editor"
    assert parsed.sender.confidence == 0.9
    assert parsed.websites[0].domain == "techblog.io"
    assert parsed.websites[0].confidence == 0.8


@pytest.mark.asyncio
async def test_original_website_scores_higher():
    parsed, _ = await _extract(_stage_router(), original_website="https://outreach-target.com/")
    by_domain = {w.domain: w.confidence for w in parsed.websites}
    assert by_domain["outreach-target.com"] == 0.9


@pytest.mark.asyncio
async def test_offerings_built_from_pricing_stage():
    parsed, _ = await _extract(_stage_router())
    kinds = [(o.offering_type, o.offering_name, o.base_price, o.confidence) for o in parsed.offerings]

    assert ("guest_post", None, 25000, 0.8) in kinds
    assert ("link_insertion", None, 15000, 0.8) in kinds
    assert ("listicle_placement", "Position 1", 99900, 0.7) in kinds
    assert ("guest_post", "gadgets.io", 30000, 0.9) in kinds
    # listicle position without a price is skipped
    assert sum(1 for k in kinds if k[0] == "listicle_placement") == 1


@pytest.mark.asyncio
async def test_guest_post_carries_express_and_rules():
    parsed, _ = await _extract(_stage_router())
    gp = next(o for o in parsed.offerings if o.offering_type == "guest_post" and o.offering_name is None)

    assert gp.express_price == 35000
    assert gp.express_days == 2
    assert gp.turnaround_days == 5
    assert gp.min_word_count == 800
    assert gp.attributes["restrictions"] == {"niches": ["casino", "cbd"]}
    assert gp.attributes["accepts_dofollow"] is True

    rules = {(r.rule_type, r.rule_name): r for r in gp.pricing_rules}
    assert rules[("niche_surcharge", "Casino niche")].actions == {"surcharge_cents": 10000}
    assert rules[("niche_surcharge", "Casino niche")].conditions == {"niches": ["casino"]}
    assert rules[("bulk_discount", "5+ posts")].conditions == {"min_quantity": 5}
    assert rules[("package_deal", "3 post package")].actions == {"total_cents": 50000}


@pytest.mark.asyncio
async def test_per_website_offering_targets_its_site():
    parsed, _ = await _extract(_stage_router())
    site = next(o for o in parsed.offerings if o.offering_name == "gadgets.io")
    assert site.website_domain == "gadgets.io"


@pytest.mark.asyncio
async def test_overall_confidence_is_mean_of_parts():
    parsed, _ = await _extract(_stage_router())
    parts = [parsed.sender.confidence] + [w.confidence for w in parsed.websites]
    parts += [o.confidence for o in parsed.offerings]
    assert parsed.overall_confidence == pytest.approx(sum(parts) / len(parts))


# ── Degradation ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_failed_stage_degrades_to_empty():
    parsed, _ = await _extract(_stage_router(requirements=CompletionError("timeout", attempts=3)))
    assert any("requirements stage failed" in e for e in parsed.errors)
    assert parsed.offerings
    assert "content_requirements" in parsed.missing_fields


@pytest.mark.asyncio
async def test_basic_info_failure_falls_back_to_email_domain():
    parsed, _ = await _extract(_stage_router(basic=CompletionError("timeout")))
    assert parsed.sender.confidence == 0.5
    assert [w.domain for w in parsed.websites] == ["techblog.io"]
    assert parsed.websites[0].confidence == 0.6


@pytest.mark.asyncio
async def test_bare_string_stage_fields_not_split_into_characters():
    basic = {**BASIC, "websites": "www.techblog.io"}
    pricing = {**PRICING, "bulk_discounts": {"quantity": 5, "discount_percent": 10}, "listicle_pricing": "n/a"}
    requirements = {**REQUIREMENTS, "prohibited_topics": "Casino"}

    parsed, _ = await _extract(_stage_router(basic=basic, pricing=pricing, requirements=requirements))

    assert [w.domain for w in parsed.websites] == ["techblog.io"]
    gp = next(o for o in parsed.offerings if o.offering_type == "guest_post" and o.offering_name is None)
    assert gp.attributes["restrictions"] == {"niches": ["casino"]}
    assert any(r.rule_type == "bulk_discount" for r in gp.pricing_rules)
    assert not any(o.offering_type == "listicle_placement" for o in parsed.offerings)


@pytest.mark.asyncio
async def test_all_stages_failing_raises():
    err = CompletionError("down", attempts=3)
    with pytest.raises(ExtractionError):
        await _extract(_stage_router(basic=err, pricing=err, requirements=err))
