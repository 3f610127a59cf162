"""api/ -- FastAPI application, HTTP contract and route handlers.

Layer rule: api/ sits on top. Nothing outside api/ (except asgi.py) imports it.
"""
