"""
Accès aux événements persistés.

Remplace le stockage local du navigateur: les composants reçoivent un
EventRepository (construit à partir de la session de la requête) au lieu
d'aller lire un état global.
"""

import logging
import time
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from models import Event

logger = logging.getLogger("app.repository")


def new_event_id() -> str:
    """Identifiant opaque dérivé de l'horloge (millisecondes epoch)."""
    return str(int(time.time() * 1000))


class EventRepository:
    """CRUD des événements. Pas de verrouillage: le dernier écrivain gagne."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, name: str, event_date: date, location: str, owner: Optional[str] = None) -> Event:
        event_id = new_event_id()
        # Deux créations dans la même milliseconde: on décale l'identifiant
        while self.db.get(Event, event_id) is not None:
            event_id = str(int(event_id) + 1)

        event = Event(
            id=event_id,
            name=name,
            date=event_date,
            location=location,
            image_urls=[],
            owner=owner,
        )
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        logger.info(f"[Events] created event id={event.id} name={name!r} owner={owner}")
        return event

    def get(self, event_id: str) -> Optional[Event]:
        return self.db.get(Event, event_id)

    def list_for_owner(self, owner: str) -> List[Event]:
        return (
            self.db.query(Event)
            .filter(Event.owner == owner)
            .order_by(Event.created_at, Event.id)
            .all()
        )

    def save(self, event: Event, image_urls: List[str]) -> Event:
        """Réécrit la liste d'images et horodate la modification."""
        # Nouvelle liste pour que SQLAlchemy détecte le changement de la colonne JSON
        event.image_urls = list(image_urls)
        event.last_modified = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(event)
        return event

    def add_images(self, event: Event, urls: List[str]) -> Event:
        return self.save(event, list(event.image_urls or []) + list(urls))
