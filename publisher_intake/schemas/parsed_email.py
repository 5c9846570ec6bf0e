"""
schemas/parsed_email.py — Typed extraction result shared by every stage

ParsedEmail is the contract between the extractors and the qualification,
resolution and reconciliation stages. Both extraction strategies return it
fully populated: downstream code never has to guess whether a field exists.

Business Rules:
- Prices are integer cents (base_price, express_price, rule amounts)
- Confidence values live in [0.0, 1.0]
- Offering types are limited to OFFERING_TYPES

Called by: services/offer_extractor.py, services/legacy_extractor.py, services/email_pipeline.py
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

OfferingType = Literal["guest_post", "link_insertion", "listicle_placement", "sponsored_review"]
Availability = Literal["pending_verification", "available", "limited", "unavailable"]


class SenderInfo(BaseModel):
    email: str
    name: str | None = None
    company: str | None = None
    phone: str | None = None
    confidence: float = Field(0.5, ge=0.0, le=1.0)


class ExtractedWebsite(BaseModel):
    domain: str
    confidence: float = Field(0.8, ge=0.0, le=1.0)


class ExtractedPricingRule(BaseModel):
    for_offering_type: OfferingType = "guest_post"
    rule_type: str
    rule_name: str
    description: str | None = None
    conditions: dict[str, Any] = Field(default_factory=dict)
    actions: dict[str, Any] = Field(default_factory=dict)
    priority: int = 10
    is_cumulative: bool = False
    auto_apply: bool = True


class ExtractedOffering(BaseModel):
    offering_type: OfferingType
    offering_name: str | None = None
    base_price: int = Field(0, ge=0)  # cents
    currency: str = "USD"
    turnaround_days: int | None = None
    current_availability: Availability = "pending_verification"
    express_available: bool = False
    express_price: int | None = None  # cents
    express_days: int | None = None
    min_word_count: int | None = None
    max_word_count: int | None = None
    niches: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=lambda: ["en"])
    attributes: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = False
    website_domain: str | None = None
    pricing_rules: list[ExtractedPricingRule] = Field(default_factory=list)
    confidence: float = Field(0.8, ge=0.0, le=1.0)


class ParsedEmail(BaseModel):
    sender: SenderInfo
    websites: list[ExtractedWebsite] = Field(default_factory=list)
    offerings: list[ExtractedOffering] = Field(default_factory=list)
    pricing_rules: list[ExtractedPricingRule] = Field(default_factory=list)
    overall_confidence: float = Field(0.0, ge=0.0, le=1.0)
    missing_fields: list[str] = Field(default_factory=list)
    extraction_notes: str | None = None
    errors: list[str] = Field(default_factory=list)
    strategy: str = "schema"

    @property
    def primary_domain(self) -> str | None:
        return self.websites[0].domain if self.websites else None

    def has_paid_offering(self) -> bool:
        return any(o.base_price > 0 for o in self.offerings)
