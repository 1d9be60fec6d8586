"""auth/ -- Authentication and session core for the EDAP portal.

Credential store, password hashing, session and reset tokens, the Auth
Service that orchestrates them, and the role-ordering authorization policy.

Layer rule: auth/ imports stdlib, third-party libraries and core/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
