"""
services/ — the publisher email pipeline.

Leaves first: email_cleaner, offer_extractor / legacy_extractor (behind
extraction.get_extractor), qualification, publisher_resolver,
offering_reconciler, review_queue. email_pipeline wires them together.
"""
