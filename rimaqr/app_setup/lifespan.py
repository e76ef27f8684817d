"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Démarrage: choisit le mode de limitation de débit (RATE_LIMIT_BACKEND) et initialise FastAPILimiter.
- Arrêt: ferme toutes les souscriptions temps réel de la galerie, puis la connexion Redis.
"""
import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from rimaqr.config import RATE_LIMIT_BACKEND, RATE_LIMIT_LOCAL_FALLBACK, RATE_LIMIT_REDIS_URL
from rimaqr.media.registry import registry as media_registry
from rimaqr.utils.rate_limit import MODE_LOCAL, MODE_OFF, MODE_REDIS, SlidingWindow

logger = logging.getLogger("uvicorn.error")


def _redis_connection():
    if RATE_LIMIT_BACKEND == "fakeredis":
        from fakeredis.aioredis import FakeRedis
        return FakeRedis(decode_responses=True)
    return aioredis.from_url(RATE_LIMIT_REDIS_URL, encoding="utf-8", decode_responses=True)


async def _init_rate_limiter(app: FastAPI) -> None:
    app.state.rate_limit_window = SlidingWindow()
    if RATE_LIMIT_BACKEND in (MODE_OFF, MODE_LOCAL):
        app.state.rate_limit_mode = RATE_LIMIT_BACKEND
        logger.info("Rate limiting mode=%s", RATE_LIMIT_BACKEND)
        return
    try:
        await FastAPILimiter.init(_redis_connection())
        app.state.rate_limit_mode = MODE_REDIS
        logger.info("Rate limiting mode=redis")
    except Exception as e:
        app.state.rate_limit_mode = MODE_LOCAL if RATE_LIMIT_LOCAL_FALLBACK else MODE_OFF
        logger.warning("Rate limiting mode=%s (Redis init failed: %s)", app.state.rate_limit_mode, e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await _init_rate_limiter(app)
    yield
    released = media_registry.release_all()
    logger.info("Media subscriptions released: %s", released)
    if FastAPILimiter.redis is not None:
        await FastAPILimiter.redis.close()
        FastAPILimiter.redis = None
