"""
Shared Kernel Module
====================

Generic infrastructure used by the release board: structured logging,
the query cache and HTTP middleware.

DO NOT add release business logic to the shared kernel.
"""
