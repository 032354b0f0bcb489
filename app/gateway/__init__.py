"""
Gateway app.

Provider abstraction and order reconciliation: signing, provider adapters,
usage limits, the order state machine and callback handling.
"""
