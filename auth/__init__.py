"""auth/ -- Accounts, credentials, tokens and the authorization gate.

Layer rule: auth/ imports from core/ and third-party libraries only.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
