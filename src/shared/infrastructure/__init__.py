"""
Infrastructure Layer
=====================

Low-level technical concerns shared by every module:
- Logging setup
- Rate limiting for external APIs
- Metrics export
"""
