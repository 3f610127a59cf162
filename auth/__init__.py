"""auth/ -- Authentication and authorization package for StoreRater.

Token Service, Credential Store, Auth Gate and Authorization Policy.

Layer rule: auth/ may import from core/ and db/ only.
It does NOT import from api/ or ratings/.
api/ imports from auth/, not the other way around.
"""
