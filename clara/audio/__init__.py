"""
Input normalization boundary for CLARA.

Design intent:
- Turn uploaded audio or pasted transcripts into one request shape.
- Fail fast on unreadable input instead of forwarding partial payloads.
"""
