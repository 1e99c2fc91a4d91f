"""
CLARA (Clinical Logic Assessment & Reasoning Assistant) service package.

Design intent:
- Audit consultation audio or transcripts for clinical-reasoning biases.
- Keep the reasoning itself in the external oracle; own only the contract and
  the orchestration around invoking it.
"""
