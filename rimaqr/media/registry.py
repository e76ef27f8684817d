"""
Registre des synchroniseurs actifs: au plus un synchroniseur (et une souscription) par utilisateur.
Activer un autre événement ferme la souscription précédente; l'arrêt de l'application les ferme toutes.
"""
from typing import Dict, Optional
import logging
import threading

from rimaqr.media.feed import ChangeFeed
from rimaqr.media.synchronizer import MediaSynchronizer

logger = logging.getLogger(__name__)


class MediaSyncRegistry:
    def __init__(self, feed: Optional[ChangeFeed] = None) -> None:
        self.feed = feed
        self._lock = threading.Lock()
        self._syncs: Dict[str, MediaSynchronizer] = {}

    def __len__(self) -> int:
        return len(self._syncs)

    def get(self, user_id: str) -> Optional[MediaSynchronizer]:
        with self._lock:
            return self._syncs.get(str(user_id))

    def activate(self, user_id: str, event_id: str, user_token: Optional[str] = None) -> MediaSynchronizer:
        """
        Synchroniseur de l'utilisateur pour event_id, chargé et abonné.
        - Même événement: réutilisé (jeton rafraîchi), pas de seconde souscription.
        - Autre événement: l'ancien est désabonné avant d'ouvrir le nouveau.
        Le chargement réseau se fait hors du verrou: les autres utilisateurs ne l'attendent pas.
        """
        user_id, event_id = str(user_id), str(event_id)
        with self._lock:
            current = self._syncs.get(user_id)
            if current is not None and current.event_id == event_id:
                current.user_token = user_token or current.user_token
                return current
            if current is not None:
                del self._syncs[user_id]
        if current is not None:
            current.unsubscribe()
            logger.info("media.registry switched user_id=%s from=%s to=%s", user_id, current.event_id, event_id)

        sync = MediaSynchronizer(event_id, user_token=user_token, feed=self.feed)
        sync.load()

        with self._lock:
            installed = self._syncs.get(user_id)
            if installed is not None and installed.event_id == event_id:
                # activation concurrente du même événement: la première installée gagne
                return installed
            if installed is not None:
                del self._syncs[user_id]
            sync.subscribe()
            self._syncs[user_id] = sync
        if installed is not None:
            installed.unsubscribe()
        return sync

    def release(self, user_id: str) -> bool:
        with self._lock:
            sync = self._syncs.pop(str(user_id), None)
        if sync is None:
            return False
        sync.unsubscribe()
        return True

    def release_all(self) -> int:
        with self._lock:
            syncs = list(self._syncs.values())
            self._syncs.clear()
        for sync in syncs:
            sync.unsubscribe()
        return len(syncs)


registry = MediaSyncRegistry()
