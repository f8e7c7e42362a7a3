"""
learning — Learning Module

Contains the pattern analyzer, personality adapter, prediction generator,
insight detector, pattern cache, fact-extraction queue, and the learning
engine that chains them for every triggering event.
Part of LifeTwin — Adaptive Personalization Core.
"""
