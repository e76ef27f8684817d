"""
Flux de changements temps réel (abstraction de souscription).

Contrat: subscribe(event_id, callback) -> unsubscribe ; publish(change).
Le flux en mémoire du processus est alimenté par le webhook de base de données Supabase
(payload: type, table, record, old_record); tout autre transport pub/sub peut le remplacer.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import itertools
import logging
import threading

logger = logging.getLogger(__name__)

MEDIA_TABLE = "media"


class ChangeType(str, Enum):
    INSERT = "INSERT"
    DELETE = "DELETE"


@dataclass
class MediaChange:
    type: ChangeType
    record: Dict[str, Any] = field(default_factory=dict)

    @property
    def media_id(self) -> Optional[str]:
        value = self.record.get("id")
        return str(value) if value is not None else None

    @property
    def event_id(self) -> Optional[str]:
        value = self.record.get("event_id")
        return str(value) if value is not None else None


Callback = Callable[[MediaChange], None]


class ChangeFeed(ABC):
    @abstractmethod
    def subscribe(self, event_id: str, callback: Callback) -> Callable[[], None]:
        ...

    @abstractmethod
    def publish(self, change: MediaChange) -> int:
        ...


class InProcessChangeFeed(ChangeFeed):
    """
    Pub/sub en mémoire, thread-safe.
    - Un changement est livré aux abonnés de son event_id.
    - Une suppression sans event_id (old_record réduit à la clé primaire) est livrée à tous.
    - Un callback en erreur est journalisé sans bloquer les autres abonnés.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscribers: Dict[str, Dict[int, Callback]] = {}

    def subscribe(self, event_id: str, callback: Callback) -> Callable[[], None]:
        event_id = str(event_id)
        with self._lock:
            sub_id = next(self._ids)
            self._subscribers.setdefault(event_id, {})[sub_id] = callback

        def unsubscribe() -> None:
            with self._lock:
                subs = self._subscribers.get(event_id)
                if subs is None:
                    return
                subs.pop(sub_id, None)
                if not subs:
                    self._subscribers.pop(event_id, None)

        return unsubscribe

    def subscriber_count(self, event_id: Optional[str] = None) -> int:
        with self._lock:
            if event_id is not None:
                return len(self._subscribers.get(str(event_id), {}))
            return sum(len(subs) for subs in self._subscribers.values())

    def publish(self, change: MediaChange) -> int:
        with self._lock:
            if change.event_id is not None:
                targets: List[Callback] = list(self._subscribers.get(change.event_id, {}).values())
            elif change.type == ChangeType.DELETE:
                targets = [cb for subs in self._subscribers.values() for cb in subs.values()]
            else:
                targets = []
        for callback in targets:
            try:
                callback(change)
            except Exception:
                logger.exception("media.feed callback failed type=%s media_id=%s", change.type.value, change.media_id)
        return len(targets)


def parse_webhook_payload(payload: Dict[str, Any]) -> Optional[MediaChange]:
    """
    Convertit un payload de webhook de base de données en MediaChange.
    None si la table n'est pas 'media' ou si le type n'est ni INSERT ni DELETE.
    """
    if not isinstance(payload, dict):
        return None
    if (payload.get("table") or MEDIA_TABLE) != MEDIA_TABLE:
        return None
    kind = str(payload.get("type") or "").upper()
    if kind == ChangeType.INSERT.value:
        record = payload.get("record") or {}
        return MediaChange(ChangeType.INSERT, dict(record)) if record.get("id") else None
    if kind == ChangeType.DELETE.value:
        record = payload.get("old_record") or payload.get("record") or {}
        return MediaChange(ChangeType.DELETE, dict(record)) if record.get("id") else None
    return None


feed = InProcessChangeFeed()
