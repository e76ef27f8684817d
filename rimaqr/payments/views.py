import logging

from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import JSONResponse

from rimaqr.payments import stripe_client
from rimaqr.payments import webhook as payments_webhook

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

# module rimaqr.payments.views
@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe (Checkout): seule source de vérité du statut « payé ».
    - Signature: validée via stripe_client.parse_event (Stripe-Signature + STRIPE_WEBHOOK_SECRET)
    - Traitement: payments_webhook.handle_stripe_event (commande retrouvée par gateway_correlation_id)
    - Réponses: {"status": "ok", "updated": <int>} | {"status": "pending"} | {"status": "ignored"}
    - Erreurs: 400 si signature/payload invalide, 503 si la mise à jour DB échoue (Stripe réessaiera)
    """
    try:
        event = await stripe_client.parse_event(request)
    except Exception:
        logger.exception("Erreur webhook_stripe (signature/payload)")
        raise HTTPException(status_code=400, detail="Invalid Stripe webhook payload")

    result = payments_webhook.handle_stripe_event(event)
    logger.info("payments.webhook type=%s result=%s", (event or {}).get("type"), result.get("status"))
    return JSONResponse(result)
