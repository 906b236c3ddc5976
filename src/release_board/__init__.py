"""
Release Board
=============

Release aggregation and hierarchy caching service on top of a work item
service.
"""

__version__ = "1.0.0"
