"""
engines — Text-Generation Engine Module

Contains the three named engines the twin routes between.
Each engine implements the BaseEngine interface for consistent access
to different providers (OpenAI, Claude, Ollama).
Part of LifeTwin — Adaptive Personalization Core.
"""
