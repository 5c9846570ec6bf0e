"""
schemas/ — Pydantic models for extraction results and the webhook API

Provides validation at the two untrusted boundaries: completion output and
inbound webhook payloads.
"""
