"""
Provider callback handling.

- router: decode, audit and hand callbacks to the ReconciliationEngine
- views: the HTTP endpoint providers post to
"""
