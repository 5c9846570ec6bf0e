"""Publisher intake — turns inbound publisher emails into structured offers."""

__version__ = "1.0.0"
