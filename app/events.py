"""
Orchestration de la page événement: galerie, regroupement par visage,
sauvegarde et upload dans le dossier de l'événement.

Rien n'est mis en cache: chaque chargement relit le listing S3 et relance
DetectFaces puis CompareFaces.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from aws_metrics import aws_metrics
from face_grouping import FaceGroup, StoredImage, group_images_by_face
from identity import UserContext
from models import Event
from rekognition_service import RekognitionService
from repository import EventRepository
from s3_service import S3Service, build_object_key, event_prefix
from uploads import IncomingFile, UploadValidationError, upload_batch

logger = logging.getLogger("app.events")


@dataclass
class EventGallery:
    event: Event
    images: List[StoredImage] = field(default_factory=list)
    groups: List[FaceGroup] = field(default_factory=list)


def list_event_images(s3: S3Service, event: Event, user: UserContext) -> List[StoredImage]:
    keys = s3.list_keys(event_prefix(user, event.id))
    # Les clés terminées par "/" sont des marqueurs de dossier
    return [StoredImage(url=s3.url_for(k), key=k) for k in keys if not k.endswith("/")]


def load_event_gallery(
    s3: S3Service,
    vision: RekognitionService,
    event: Event,
    user: UserContext,
    threshold: Optional[float] = None,
) -> EventGallery:
    """Liste les images, détecte les visages (une image à la fois), puis regroupe."""
    with aws_metrics.action_context(f"event_gallery:{event.id}"):
        images = list_event_images(s3, event, user)
        for image in images:
            image.faces = vision.detect_faces(image.key)
        groups = group_images_by_face(images, vision.compare_faces, threshold)
    return EventGallery(event=event, images=images, groups=groups)


def save_event(
    repo: EventRepository,
    s3: S3Service,
    event: Event,
    user: UserContext,
    image_urls: Optional[Sequence[str]] = None,
) -> Event:
    """
    Range dans le dossier de l'événement toute image qui n'y est pas encore
    (copie puis suppression), puis persiste la liste complète des URLs.

    Raises:
        UploadValidationError: une image à déplacer est hors du dossier de l'utilisateur; rien n'est déplacé
        StorageError: une copie ou suppression a échoué; rien n'est persisté
    """
    if image_urls is None:
        image_urls = list(event.image_urls or [])

    keys = [s3.key_for(url) for url in image_urls]
    # Seules les clés hors du dossier de l'événement sont déplacées; elles doivent appartenir à l'appelant
    foreign = [k for k in keys if f"/{event.id}/" not in k and not k.startswith(user.root_prefix)]
    if foreign:
        logger.warning(f"[Events] Refusing save of {event.id}: {len(foreign)} key(s) outside {user.root_prefix}")
        raise UploadValidationError(f"{foreign[0].rsplit('/', 1)[-1]} does not belong to the current user")

    updated: List[str] = []
    for url, key in zip(image_urls, keys):
        if f"/{event.id}/" in key:
            updated.append(url)
            continue
        filename = key.rsplit("/", 1)[-1]
        new_key = build_object_key(user, filename, event_id=event.id)
        logger.info(f"[Events] Moving {key} -> {new_key}")
        updated.append(s3.move_object(key, new_key))

    return repo.save(event, updated)


def upload_event_images(
    repo: EventRepository,
    s3: S3Service,
    event: Event,
    user: UserContext,
    files: Sequence[IncomingFile],
) -> List[str]:
    """Upload un lot dans le dossier de l'événement puis sauvegarde l'événement."""
    with aws_metrics.action_context(f"upload_event:{event.id}"):
        urls = upload_batch(s3, files, user, event_id=event.id)
    # Les clés sont déjà dans le dossier de l'événement: rien à déplacer
    repo.add_images(event, urls)
    return urls
