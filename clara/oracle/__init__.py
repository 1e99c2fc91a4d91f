"""
Reasoning-service boundary for CLARA.

Design intent:
- Issue exactly one schema-constrained oracle call per analysis.
- Fail closed on empty or schema-nonconformant output.
- Classify upstream failures so callers can surface them distinctly.
"""
