"""
Synchroniseur de la galerie d'un événement.

- load(type_filter): remplace toute la collection locale par le résultat serveur (plus récents d'abord).
- subscribe(): une seule souscription au flux de changements de l'événement.
  INSERT -> ajout en tête (URL publique résolue), remplace un id déjà présent;
  DELETE -> retrait de l'id, sans effet si l'id est inconnu.
- delete(media_id): fichier d'abord (échec toléré), puis l'enregistrement, puis la collection locale.
- set_type_filter(): rechargement complet, jamais de filtrage côté client d'un cache non filtré.
"""
from typing import Any, Callable, Dict, List, Optional
import logging
import threading

from rimaqr.errors import DataAccessError, ValidationError
from rimaqr.media import repository as media_repo
from rimaqr.media.feed import ChangeFeed, ChangeType, MediaChange, feed as default_feed

logger = logging.getLogger(__name__)

ALL_TYPES = "all"


def normalize_type_filter(type_filter: Optional[str]) -> Optional[str]:
    value = (type_filter or "").strip().lower()
    if not value or value == ALL_TYPES:
        return None
    if value not in media_repo.MEDIA_TYPES:
        raise ValidationError("type", f"Type de média inconnu: {type_filter}")
    return value


def with_public_url(item: Dict[str, Any]) -> Dict[str, Any]:
    item = dict(item)
    if item.get("storage_path"):
        item["publicUrl"] = media_repo.public_url(item["storage_path"])
    return item


class MediaSynchronizer:
    def __init__(self, event_id: str, *, user_token: Optional[str] = None, feed: Optional[ChangeFeed] = None) -> None:
        self.event_id = str(event_id)
        self.user_token = user_token
        self.feed = feed or default_feed
        self.type_filter: Optional[str] = None
        self._items: List[Dict[str, Any]] = []
        self._lock = threading.RLock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def subscribed(self) -> bool:
        return self._unsubscribe is not None

    def items(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._items)

    def _index(self, media_id: str) -> Optional[int]:
        for i, item in enumerate(self._items):
            if str(item.get("id")) == media_id:
                return i
        return None

    # --- chargement ---

    def load(self, type_filter: Optional[str] = None) -> List[Dict[str, Any]]:
        """Remplace la collection locale (DataAccessError: la collection précédente est conservée)."""
        type_filter = normalize_type_filter(type_filter)
        rows = media_repo.fetch_media(self.event_id, type_filter, user_token=self.user_token)
        items = [with_public_url(r) for r in rows]
        with self._lock:
            self.type_filter = type_filter
            self._items = items
        logger.info("media.sync.load event_id=%s type=%s count=%s", self.event_id, type_filter, len(items))
        return list(items)

    def refresh(self) -> List[Dict[str, Any]]:
        return self.load(self.type_filter)

    def set_type_filter(self, type_filter: Optional[str]) -> List[Dict[str, Any]]:
        with self._lock:
            self._items = []
        return self.load(type_filter)

    # --- temps réel ---

    def subscribe(self) -> Callable[[], None]:
        """Ouvre la souscription de l'événement (idempotent) et retourne la fonction de désabonnement."""
        with self._lock:
            if self._unsubscribe is None:
                self._unsubscribe = self.feed.subscribe(self.event_id, self._on_change)
        return self.unsubscribe

    def unsubscribe(self) -> None:
        with self._lock:
            handle, self._unsubscribe = self._unsubscribe, None
        if handle is not None:
            handle()

    def _on_change(self, change: MediaChange) -> None:
        media_id = change.media_id
        if media_id is None:
            return
        if change.type == ChangeType.INSERT:
            if change.event_id is not None and change.event_id != self.event_id:
                return
            if self.type_filter and change.record.get("type") != self.type_filter:
                return
            item = with_public_url(change.record)
            with self._lock:
                index = self._index(media_id)
                if index is not None:
                    self._items.pop(index)
                self._items.insert(0, item)
        elif change.type == ChangeType.DELETE:
            with self._lock:
                index = self._index(media_id)
                if index is not None:
                    self._items.pop(index)

    # --- suppression ---

    def delete(self, media_id: str) -> None:
        """
        Supprime un média.
        - Le fichier est retiré d'abord; son absence ou un échec ne bloque pas la suite.
        - DataAccessError si l'enregistrement ne peut pas être supprimé (collection locale inchangée).
        """
        media_id = str(media_id)
        with self._lock:
            index = self._index(media_id)
            media = dict(self._items[index]) if index is not None else None
        if media is None:
            media = media_repo.get_media(media_id, user_token=self.user_token)

        storage_path = (media or {}).get("storage_path")
        if storage_path:
            try:
                media_repo.remove_file(storage_path, user_token=self.user_token)
            except DataAccessError:
                logger.warning("media.sync.delete file removal failed id=%s path=%s", media_id, storage_path)

        media_repo.delete_media_record(media_id, user_token=self.user_token)
        with self._lock:
            index = self._index(media_id)
            if index is not None:
                self._items.pop(index)
        logger.info("media.sync.delete id=%s event_id=%s", media_id, self.event_id)
