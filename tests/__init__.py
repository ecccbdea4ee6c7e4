"""Test package for the arithmetic trainer.

The tests exercise the deterministic core only: problem generation, scoring,
analytics, storage and the session engine. Time is simulated with a fake clock
and randomness is seeded, so no test waits in real time. To run these tests,
execute ``pytest`` from the project root.
"""
