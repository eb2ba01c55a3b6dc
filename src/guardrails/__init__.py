"""
Guardrails Module
=================

Answers support questions from the document library and withholds any
answer that is not sufficiently sourced, cited and confident.

Bounded Context: Guarded Answers
- Retrieves numbered sources for a query
- Generates an answer that must cite them
- Verifies citations and scores confidence
- Writes one audit log entry per query
"""
