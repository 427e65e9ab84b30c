from sqlalchemy import Column, String, Date, DateTime, JSON
from sqlalchemy.sql import func
from database import Base
import enum

class UserRole(str, enum.Enum):
    USER = "user"
    PHOTOGRAPHER = "photographer"

class Event(Base):
    __tablename__ = "events"

    # Identifiant opaque dérivé de l'horodatage (millisecondes)
    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    location = Column(String, nullable=False)
    # Liste des URLs publiques, réécrite entièrement à chaque sauvegarde
    image_urls = Column(JSON, nullable=False, default=list)
    # Dossier (identifiant assaini) du créateur, pour le tableau de bord
    owner = Column(String, index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_modified = Column(DateTime(timezone=True), nullable=True)

    @property
    def photo_count(self) -> int:
        return len(self.image_urls or [])
