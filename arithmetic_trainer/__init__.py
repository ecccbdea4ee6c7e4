"""Arithmetic practice trainer: problem generation, scoring, session engine and statistics.

Deterministic timing/scoring/RNG/state lives here; rendering, input and audio
belong to the host application.
"""
