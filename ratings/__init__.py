"""ratings/ -- Stores, ratings and the Rating Engine.

Layer rule: ratings/ may import from core/, db/ and auth.models.
It does NOT import from api/.
"""
