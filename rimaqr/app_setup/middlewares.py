"""
Middlewares transverses de l'application.
- register_basic_middlewares: CORS (application mobile / web) et hôtes autorisés.
- register_security_middleware: en-têtes de sécurité d'une API JSON; pas de cache sur /api/.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from rimaqr.config import ALLOWED_HOSTS, COOKIE_SECURE, CORS_ORIGINS

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}
HSTS = "max-age=63072000; includeSubDomains"


def register_basic_middlewares(app: FastAPI) -> None:
    wildcard = "*" in CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        # Les origines explicites seules autorisent le cookie sb_access
        allow_credentials=not wildcard,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Webhook-Secret", "Stripe-Signature"],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=["*"] if wildcard else ALLOWED_HOSTS)


def register_security_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def api_security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if COOKIE_SECURE:
            response.headers.setdefault("Strict-Transport-Security", HSTS)
        # Commandes et droits: jamais servis depuis un cache
        if request.url.path.startswith("/api/"):
            response.headers.setdefault("Cache-Control", "no-store")
            response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        return response
