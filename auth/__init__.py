"""auth/ -- Credential lifecycle package for Keyward.

Layer rule: auth/ imports stdlib, third-party libraries, core/ and sessions/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
