"""
Infrastructure Layer
=====================

Low-level technical concerns:
- Logging setup
- Query cache
"""
