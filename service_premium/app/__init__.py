"""
Premium Access service package.

Decides whether a subject may read a content item, renders previews for
subjects who may not, and releases time-gated premium content on schedule.
It provides:

- app.main: PremiumService facade and its factory.
- app.access: Decision policy, decision models and subscription lookups.
- app.cache: Tag-indexed Redis cache and the namespace strategy table.
- app.preview: HTML-aware truncation for teasers.
- app.scheduler: Release scheduling and the release pass.
- app.worker: Periodic release worker and its command line.

Guidelines:
- Content and subscriptions are owned elsewhere; reach them through app.stores.
- Cache failures never fail a request; they degrade to recomputation.
- Invalidate by tag after every content mutation.
"""
