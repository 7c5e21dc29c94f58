"""
Cache package for the Premium Access service.

Provides a Redis-backed cache whose entries are indexed by tag, so every
entry derived from one content item or one user can be dropped at once.
"""
