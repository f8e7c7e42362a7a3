"""
core — Core Logic Module

Contains the digital twin pipeline, context assembly, query classifier,
engine routing policy, and autonomy-gated action builders.
Part of LifeTwin — Adaptive Personalization Core.
"""
