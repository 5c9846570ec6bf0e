"""
test_qualification.py — Tests for services/qualification.py

Covers: decision order, the pricing-mention override, rejection / link-swap
/ vague-response detection, and reply-only matching (quoted outreach text
never counts).

Called by: pytest
Depends on: publisher_intake.services.qualification
"""

import pytest
from conftest import make_offering, make_parsed

from publisher_intake.services.qualification import QualificationResult, qualify


def _paid():
    return make_parsed()


# ── Offerings gate ───────────────────────────────────────────────────


def test_no_offerings():
    result = qualify("Thanks, not interested, please remove me", make_parsed(offerings=[]))
    assert result.is_qualified is False
    assert result.reason == "no_offerings"
    assert result.status == "disqualified"


def test_no_positive_price():
    parsed = make_parsed(offerings=[make_offering(base_price=0)])
    result = qualify("Guest posts welcome, the price is negotiable", parsed)
    assert result.reason == "no_pricing"


# ── Pricing override ─────────────────────────────────────────────────


def test_dollar_sign_qualifies():
    result = qualify("Guest posts are $250, we don't accept casino or CBD content", _paid())
    assert result.is_qualified is True
    assert result.reason is None
    assert result.status == "qualified"


@pytest.mark.parametrize(
    "body",
    [
        "Not interested in free posts, but our price is 200",
        "No thanks to link swaps. Our fee applies to every post.",
        "In exchange we charge a flat rate, invoice via PayPal",
        "Sounds good, payment upfront please",
        "Happy to, 150 EUR per article",
    ],
)
def test_pricing_token_overrides_everything(body):
    assert qualify(body, _paid()).is_qualified is True


def test_pricing_token_needs_word_boundary():
    """'separate' contains 'rate' but is not a pricing mention."""
    result = qualify("We keep sponsored content separate. Not interested.", _paid())
    assert result.reason == "rejection"


# ── Rejection / link swap / vague ────────────────────────────────────


def test_rejection():
    result = qualify("Thanks, not interested, please remove me", _paid())
    assert result.is_qualified is False
    assert result.reason == "rejection"


def test_unsubscribe_is_rejection():
    assert qualify("Please unsubscribe me from this list.", _paid()).reason == "rejection"


def test_link_swap():
    result = qualify("We can publish it if you give us a link in return.", _paid())
    assert result.reason == "link_swap"


def test_reciprocal_link():
    assert qualify("Only reciprocal arrangements for us.", _paid()).reason == "link_swap"


def test_vague_response():
    result = qualify("Sounds good, tell me more about your client.", _paid())
    assert result.reason == "vague_response"


def test_vague_phrase_with_amount_qualifies():
    result = qualify("Sounds good, we usually do 300 per post.", _paid())
    assert result.is_qualified is True


def test_plain_reply_with_paid_offering_qualifies():
    result = qualify("Yes we accept guest posts on tech topics.", _paid())
    assert result.is_qualified is True


# ── Reply-only matching ──────────────────────────────────────────────


def test_quoted_outreach_pricing_is_ignored():
    body = (
        "Not interested, sorry.\n\n"
        "On Mon, Mar 3, 2025 Outreach <o@agency.com> wrote:\n"
        "> We pay $100 per guest post."
    )
    assert qualify(body, _paid()).reason == "rejection"


def test_signature_pricing_is_ignored():
    body = "Let me know what you have in mind.\n--\nDana | Rates & media kit: techblog.io/ads"
    assert qualify(body, _paid()).reason == "vague_response"


def test_html_body():
    body = "<p>Our rate is <b>$250</b> per post.</p><p>Best regards,</p>"
    assert qualify(body, _paid()).is_qualified is True


def test_result_dataclass_defaults():
    result = QualificationResult(True)
    assert result.reason is None
    assert result.notes is None
