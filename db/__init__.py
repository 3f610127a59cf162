"""db/ -- SQLAlchemy Core schema, engine factory and Listing Query Builder.

Layer rule: db/ may import from core/ only.
"""
