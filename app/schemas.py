from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from models import UserRole

# Schémas pour l'identité
class SessionRequest(BaseModel):
    # Ce que renvoie le widget OAuth: email et/ou nom affiché
    email: Optional[str] = None
    name: Optional[str] = None
    role: UserRole = UserRole.USER

class Token(BaseModel):
    access_token: str
    token_type: str

class AuthConfig(BaseModel):
    google_client_id: Optional[str] = None
    auth_widget_enabled: bool

# Schémas pour les événements
class EventCreate(BaseModel):
    name: str
    date: date
    location: str

class Event(BaseModel):
    id: str
    name: str
    date: date
    location: str
    image_urls: List[str] = []
    photo_count: int = 0
    created_at: Optional[datetime] = None
    last_modified: Optional[datetime] = None

    class Config:
        from_attributes = True

class EventSave(BaseModel):
    # None = conserver la liste actuelle
    image_urls: Optional[List[str]] = None

# Schémas pour la galerie
class EventImage(BaseModel):
    url: str
    faces: List[Dict[str, Any]] = []

class FaceGroup(BaseModel):
    face_id: str
    images: List[str]

class EventGallery(BaseModel):
    event: Event
    images: List[EventImage]
    face_groups: List[FaceGroup]

# Schémas pour les uploads
class UploadResult(BaseModel):
    message: str
    uploaded_urls: List[str]
    selfie_qr_code: Optional[str] = None

class SelfieMatches(BaseModel):
    matched_urls: List[str]
    message: str
