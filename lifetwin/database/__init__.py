"""
database — Storage Module

Contains the abstract event / personality / autonomy-settings stores,
their in-memory implementations, and SQLAlchemy-backed adapters.
Part of LifeTwin — Adaptive Personalization Core.
"""
