"""
API orchestration boundary for CLARA.

Design intent:
- Expose the analyze contract and the single-session surface over HTTP.
- Keep request validation explicit and failure modes predictable.
- Orchestrate modules without embedding domain logic in routers.
"""
