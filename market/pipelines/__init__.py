"""Pipelines for catalog upkeep, seller lookup, eligibility and request matching.

Each step is callable on its own so the HTTP layer, batch scripts and tests
can compose them.
"""
