"""State layer.

Holds the single most recent sensor reading per quantity and turns new
distance readings into mailbox transition events.
"""
