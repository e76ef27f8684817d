"""
Limitation de débit des routes sensibles (ex: émission de jeton de paiement).

Le mode est choisi au démarrage et stocké dans app.state.rate_limit_mode (voir app_setup.lifespan):
- "redis": fastapi-limiter; une panne Redis ne produit jamais de 429
- "local": fenêtre glissante en mémoire du processus (un seul worker)
- "off": aucune limite
"""
from collections import defaultdict, deque
from typing import Any, Deque, Dict
from urllib.parse import urlparse
import hashlib
import logging
import threading
import time

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter

from rimaqr.config import RATE_LIMIT_REDIS_URL
from rimaqr.utils.security import request_token

logger = logging.getLogger(__name__)

MODE_REDIS = "redis"
MODE_LOCAL = "local"
MODE_OFF = "off"
MODES = (MODE_REDIS, MODE_LOCAL, MODE_OFF)

TOO_MANY_REQUESTS = "Trop de tentatives, réessayez dans un instant"


def client_key(request: Request) -> str:
    """Clé de quota par route: utilisateur (jeton hashé) sinon adresse IP."""
    token = request_token(request)
    if token:
        who = "user:" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
    else:
        who = "ip:" + (request.client.host if request.client else "local")
    return f"{who}:{request.url.path}"


class SlidingWindow:
    """Compteur en mémoire: au plus `times` appels par clé sur les `seconds` dernières secondes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    def hit(self, key: str, times: int, seconds: float) -> bool:
        now = time.monotonic()
        with self._lock:
            hits = self._hits[key]
            while hits and now - hits[0] >= seconds:
                hits.popleft()
            if len(hits) >= times:
                return False
            hits.append(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def current_mode(request: Request) -> str:
    return getattr(request.app.state, "rate_limit_mode", MODE_REDIS)


def local_window(app: FastAPI) -> SlidingWindow:
    window = getattr(app.state, "rate_limit_window", None)
    if window is None:
        window = app.state.rate_limit_window = SlidingWindow()
    return window


async def _identifier(request: Request) -> str:
    return client_key(request)


def optional_rate_limit(times: int, seconds: int):
    """Dépendance FastAPI: 429 au-delà de `times` appels par `seconds` secondes."""
    limiter = RateLimiter(times=times, seconds=seconds, identifier=_identifier)

    async def _dep(request: Request, response: Response) -> None:
        mode = current_mode(request)
        if mode == MODE_OFF:
            return
        if mode == MODE_LOCAL:
            if not local_window(request.app).hit(client_key(request), times, seconds):
                raise HTTPException(status_code=429, detail=TOO_MANY_REQUESTS)
            return
        try:
            await limiter(request, response)
        except HTTPException:
            raise
        except Exception as e:
            logger.warning("rate_limit.redis unavailable path=%s: %s", request.url.path, e)

    return _dep


def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    mode = current_mode(request)
    redis_ready = FastAPILimiter.redis is not None
    info: Dict[str, Any] = {
        "mode": mode,
        "enabled": mode != MODE_OFF,
        "redis_ready": redis_ready,
    }
    if mode == MODE_REDIS and redis_ready and RATE_LIMIT_REDIS_URL:
        p = urlparse(RATE_LIMIT_REDIS_URL)
        info["redis"] = {"scheme": p.scheme, "host": p.hostname, "port": p.port}
    return info
