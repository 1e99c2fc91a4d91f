"""
Audit report aggregation for CLARA.

Design intent:
- Derive presenter-facing counts from the oracle's ordered audit flags.
- Never reorder, filter or rewrite the flags themselves.
"""
