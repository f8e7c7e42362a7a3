"""
autonomy — Autonomy Policy Module

Contains the autonomy categories, the YAML threshold table loader, and the
gate every proposed action passes through.
Part of LifeTwin — Adaptive Personalization Core.
"""
