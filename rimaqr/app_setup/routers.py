"""
Registre central des routers (API v1, webhooks, health).
"""
from fastapi import FastAPI
from rimaqr.catalog import views as catalog_views
from rimaqr.cart import views as cart_views
from rimaqr.events import views as events_views
from rimaqr.entitlements import views as entitlements_views
from rimaqr.orders import views as orders_views
from rimaqr.payments import views as payments_views
from rimaqr.media import views as media_views
from rimaqr.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(catalog_views.router)
    app.include_router(cart_views.router)
    app.include_router(events_views.router)
    app.include_router(entitlements_views.router)
    app.include_router(orders_views.router)
    app.include_router(media_views.router)
    # Webhooks de confiance
    app.include_router(payments_views.router)
    # Health & monitoring
    app.include_router(health_router)
