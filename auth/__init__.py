"""auth/ -- Accounts, credentials, roles and identity links for authcore.

Layer rule: auth/ may import from core/ (errors, context, config) and
cache/ (the code store). It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
