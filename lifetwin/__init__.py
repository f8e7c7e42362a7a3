"""
lifetwin — Adaptive Personalization Core

Ingests per-user interaction events, mines patterns, adapts a personality
trait vector, derives predictions and insights, and answers queries as the
user's digital twin.
Part of LifeTwin — Adaptive Personalization Core.
"""

__version__ = "0.1.0"
