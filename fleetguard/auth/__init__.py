"""
Audit sessions: time-boxed bearer tokens for external auditors.

Design goals:
- Store-agnostic (in-memory for dev/single replica, Postgres for deployments).
- Only token hashes are persisted; the raw token is shown to the issuer once.
- Fail closed: an unreachable or slow store denies the token.
"""
