"""auth/ -- Authentication and authorization package for the accounts API.

Layer rule: auth/ imports from core/ and third-party libraries only.
It does NOT import from api/, cache/, or catalog/.
api/ imports from auth/, not the other way around.
"""
