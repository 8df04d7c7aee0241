"""Backend package: DB models, pipelines, scoring, ranking and the HTTP API.

This package turns a free-text buyer request into a ranked list of eligible
sellers from the requester's institution.
"""
