"""auth/ -- Account lifecycle, credentials, one-time codes and session tokens.

Layer rule: auth/ may import core/, notify/ and rbac.store. It does NOT
import from api/. api/ imports from auth/, not the other way around.
"""
