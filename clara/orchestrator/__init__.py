"""
Analysis lifecycle for CLARA.

Design intent:
- Own a single analysis session with one writer.
- Sequence normalization and oracle calls through an explicit state machine.
- Discard results of abandoned sessions instead of applying them.
"""
