"""Extraction contract and strategy factory.

Both strategies take the raw email body and return a fully-populated
ParsedEmail; the orchestrator only ever sees this protocol.
"""

from typing import Protocol

from publisher_intake.config import settings
from publisher_intake.schemas.parsed_email import ParsedEmail
from publisher_intake.services.legacy_extractor import MultiStageExtractor
from publisher_intake.services.offer_extractor import SchemaOfferExtractor


class Extractor(Protocol):
    name: str

    async def extract(self, email_body: str, sender_email: str, subject: str | None = None) -> ParsedEmail: ...


_STRATEGIES = {
    SchemaOfferExtractor.name: SchemaOfferExtractor,
    MultiStageExtractor.name: MultiStageExtractor,
}


def get_extractor(strategy: str | None = None) -> Extractor:
    """Extractor for the given strategy name, defaulting to settings.extraction_strategy."""
    key = strategy or settings.extraction_strategy
    try:
        return _STRATEGIES[key]()
    except KeyError:
        raise ValueError(f"unknown extraction strategy {key!r}; expected one of {sorted(_STRATEGIES)}") from None
