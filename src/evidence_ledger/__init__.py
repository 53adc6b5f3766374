"""Evidence Ledger - competitor evidence pipeline and structured generation.

Turns public web signals about named competitors into ranked, citation-backed
evidence and schema-validated decision artifacts.

Components:
- retrieval: query planning, search, harvesting, canonicalization, classification
- quality: claim ranking, recency buckets, coverage analysis
- llm: generator client, prompts, validation, validate-then-repair step machine
- pipeline: evidence collection, analysis and results runs, auxiliary fetches
- store: SQLite persistence for projects, competitors and artifacts
- mlops: Langfuse run tracking
- main_api: FastAPI surface
"""
