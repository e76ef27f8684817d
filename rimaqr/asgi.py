"""
Point d'entrée ASGI pour les process managers (ex: uvicorn/gunicorn: rimaqr.asgi:app).
Lancement local: python -m rimaqr
"""
from rimaqr.app import app

__all__ = ["app"]
