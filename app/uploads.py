"""
Orchestration des uploads (photos d'événement et selfies).

Toute la validation a lieu avant le premier appel réseau: un seul fichier
invalide rejette le lot entier. Les fichiers d'un lot partent ensuite en
parallèle (sans plafond) et le lot n'aboutit que si chaque upload aboutit.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import List, Optional, Sequence

from aws_metrics import aws_metrics
from identity import UserContext
from s3_service import S3Service, build_object_key, timestamped_filename
from settings import MIB, settings

logger = logging.getLogger("app.uploads")


class UploadValidationError(ValueError):
    """Fichier refusé côté serveur avant tout appel réseau."""


@dataclass(frozen=True)
class IncomingFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _mb(limit: int) -> str:
    return f"{limit // MIB}MB"


def validate_image_file(file: IncomingFile, max_bytes: Optional[int] = None) -> None:
    """Type MIME image/* et taille maximale (10MB par défaut)."""
    max_bytes = max_bytes or settings.MAX_IMAGE_UPLOAD_BYTES
    if not (file.content_type or "").lower().startswith("image/"):
        raise UploadValidationError(f"{file.filename} is not a valid image file")
    if file.size > max_bytes:
        raise UploadValidationError(f"{file.filename} exceeds the {_mb(max_bytes)} size limit")


def validate_selfie_file(file: Optional[IncomingFile], max_bytes: Optional[int] = None) -> None:
    """JPEG ou PNG uniquement, 5MB maximum."""
    if file is None:
        raise UploadValidationError("Please select a selfie to upload.")
    max_bytes = max_bytes or settings.MAX_SELFIE_UPLOAD_BYTES
    if (file.content_type or "").lower() not in settings.selfie_content_types:
        raise UploadValidationError("Only JPEG and PNG images are supported")
    if file.size > max_bytes:
        raise UploadValidationError(f"Image size must be less than {_mb(max_bytes)}")


def validate_batch(files: Sequence[IncomingFile]) -> None:
    if not files:
        raise UploadValidationError("Please select at least one image to upload.")
    for f in files:
        validate_image_file(f)


def upload_batch(
    s3: S3Service,
    files: Sequence[IncomingFile],
    user: UserContext,
    event_id: Optional[str] = None,
) -> List[str]:
    """
    Upload un lot de photos (racine utilisateur ou dossier d'événement).

    Returns:
        List[str]: URLs publiques, dans l'ordre des fichiers reçus

    Raises:
        UploadValidationError: lot invalide (aucun appel réseau effectué)
        StorageError: au premier upload en échec
    """
    validate_batch(files)

    keys = [build_object_key(user, timestamped_filename(f.filename), event_id=event_id) for f in files]
    urls: List[Optional[str]] = [None] * len(files)

    action = aws_metrics.current_action()

    def _upload(key: str, f: IncomingFile) -> str:
        with aws_metrics.attributed_to(action):
            return s3.upload_bytes(key, f.data, f.content_type)

    with ThreadPoolExecutor(max_workers=len(files)) as pool:
        futures = {
            pool.submit(_upload, key, f): i
            for i, (key, f) in enumerate(zip(keys, files))
        }
        for fut in as_completed(futures):
            # Premier échec: l'exception remonte et le lot entier échoue
            urls[futures[fut]] = fut.result()

    logger.info(f"[Upload] {len(files)} file(s) uploaded for {user.root_prefix} event={event_id}")
    return urls


def upload_selfie(s3: S3Service, file: Optional[IncomingFile], user: UserContext) -> str:
    """Upload le selfie sous .../selfies/ et retourne uniquement le nom généré."""
    validate_selfie_file(file)
    filename = timestamped_filename(file.filename)
    s3.upload_bytes(build_object_key(user, filename, selfie=True), file.data, file.content_type)
    return filename
