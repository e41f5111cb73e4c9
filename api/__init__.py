"""api/ -- FastAPI application assembly and JSON endpoints for SecretBoard.

Layer rule: api/ may import from auth/ and core/. It does NOT import from web/;
asgi.py joins the two.
"""
