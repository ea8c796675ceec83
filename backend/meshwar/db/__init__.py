"""
Persistence layer: declarative base, engine/session ownership and the
retrying transaction runner.
"""
