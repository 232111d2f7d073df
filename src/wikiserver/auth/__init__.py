"""Authentication and authorization.

Learn: one permission model, two ways in:
1. Browser users → username/password form → server-side session cookie.
   Claims are re-read from the credential store on every request, so a
   role change takes effect immediately.
2. API clients → GET /api/token with login/password headers → signed JWT.
   Claims are frozen into the token and verified without a database hit.

Both paths resolve to the same Principal, and a single claim check
(gateway.require_claim) decides whether a page operation may proceed.
"""
