"""Retrieval and grounding for chat and compose requests.

Fans a query out over the per-video collections in scope, ranks the pooled
passages globally, assembles a bounded prompt context and resolves the
citations the model emits back to timestamped video links.
"""
