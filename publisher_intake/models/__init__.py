"""Database models — re-exports all models.

Import from here:  from publisher_intake.models import Publisher, Website, ...
Or from submodules: from publisher_intake.models.offerings import PublisherOffering
"""

from .base import Base  # noqa: F401

# Publishers & Websites
from .publishers import (  # noqa: F401
    Publisher,
    PublisherWebsite,
    ShadowPublisherWebsite,
    Website,
)

# Offerings & Pricing
from .offerings import (  # noqa: F401
    AVAILABILITY_STATES,
    OFFERING_TYPES,
    PublisherOffering,
    PublisherOfferingRelationship,
    PublisherPricingRule,
)

# Email Processing
from .email_processing import (  # noqa: F401
    EmailProcessingLog,
    EmailReviewQueue,
    PublisherAutomationLog,
)
