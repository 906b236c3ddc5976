"""
Release Tracking Module
=======================

Bounded Context for releases tracked as tagged work items.

Responsibilities:
- List release versions and release epics with progress
- Aggregate work items, feature metrics and latest deployments per release
- Lazily load the release -> linked item -> child hierarchy
- Flag Epics/Features that have UAT-ready children
- Link/unlink items, tag, edit and delete release epics
- Record deployments and export release notes
"""
