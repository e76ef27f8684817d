# rimaqr.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du service.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, passerelle de paiement, Stripe)
- Expose les préfixes de redirection succès/échec observés dans la page de paiement
- Paramètres médias (bucket de stockage, secret du webhook temps réel) et lien invité
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")

# Supabase: URL et clés (anon/service)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("EXPO_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Sécurité / CORS
COOKIE_SECURE = _flag("COOKIE_SECURE")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Passerelle de paiement
# - hosted_token: service de jeton (edge function) + page hébergée <gateway>/pay/<token>
# - stripe: session Stripe Checkout
PAYMENT_GATEWAY = _clean_env(os.getenv("PAYMENT_GATEWAY") or "hosted_token").lower()
PAYMENT_GATEWAY_URL = _clean_env(os.getenv("PAYMENT_GATEWAY_URL") or "https://www.paytr.com").rstrip("/")
PAYMENT_TOKEN_FUNCTION = _clean_env(os.getenv("PAYMENT_TOKEN_FUNCTION") or "paytr-token")
PAYMENT_SUCCESS_URL = _clean_env(os.getenv("PAYMENT_SUCCESS_URL") or "https://rimaqr.com/payment/success")
PAYMENT_FAILURE_URL = _clean_env(os.getenv("PAYMENT_FAILURE_URL") or "https://rimaqr.com/payment/fail")
PAYMENT_TEST_MODE = _flag("PAYMENT_TEST_MODE", "true")
DEFAULT_CURRENCY = _clean_env(os.getenv("DEFAULT_CURRENCY") or "TRY")

# Stripe: clé privée et secret webhook
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

# Médias: bucket de stockage et secret partagé du webhook de changements
MEDIA_BUCKET = _clean_env(os.getenv("MEDIA_BUCKET") or "event-media")
MEDIA_WEBHOOK_SECRET = _clean_env(os.getenv("MEDIA_WEBHOOK_SECRET") or "")

# Lien invité encodé dans le QR code de l'événement
WEB_GUEST_URL = _clean_env(os.getenv("WEB_GUEST_URL") or "https://rimaqr.com/e").rstrip("/")

# Limitation de débit: redis (fastapi-limiter), fakeredis (tests), local (mémoire du processus) ou off
RATE_LIMIT_BACKEND = _clean_env(os.getenv("RATE_LIMIT_BACKEND") or "redis").lower()
RATE_LIMIT_REDIS_URL = _clean_env(os.getenv("RATE_LIMIT_REDIS_URL") or "redis://127.0.0.1:6379/0")
# Si Redis est injoignable au démarrage: fenêtre locale plutôt qu'aucune limite
RATE_LIMIT_LOCAL_FALLBACK = _flag("RATE_LIMIT_LOCAL_FALLBACK")
