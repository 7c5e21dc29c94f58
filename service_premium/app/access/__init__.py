"""
Access decision package.

The policy is a pure function from content, subject, time and subscription
to one of a closed set of outcomes; the engine adds caching and metrics on
top of it.

Modules of interest:
- models: Content, subject, subscription and decision models.
- engine: Policy evaluation and cached decisions.
- subscriptions: Read-through cache for subscription lookups.
"""
