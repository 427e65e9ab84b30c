"""
Regroupement des photos d'un événement par visage.

Aucun modèle local: chaque paire est comparée par Rekognition (CompareFaces).
Une seule passe gauche-droite, O(n²) appels séquentiels:

  - chaque image non assignée ayant au moins un visage ouvre un groupe;
  - toutes les autres images non assignées (avec visage) sont comparées à elle;
  - une correspondance ajoute la candidate au groupe et l'assigne aussitôt;
  - la graine n'est assignée qu'après son balayage.

Le regroupement n'est pas transitif: A~B et B~C ne garantit pas A et C dans le
même groupe si la paire (A, C) n'a jamais été comparée.
"""

import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set

from rekognition_service import ComparisonOutcome
from settings import settings

logger = logging.getLogger("app.grouping")

SUPPORTED_IMAGE_KEY = re.compile(r"\.(jpg|jpeg|png)$", re.IGNORECASE)

# (clé source, clé cible, seuil) -> résultat
Comparator = Callable[[str, str, float], ComparisonOutcome]


@dataclass
class StoredImage:
    url: str
    key: str
    faces: List[Dict] = field(default_factory=list)


@dataclass
class FaceGroup:
    face_id: str
    images: List[StoredImage] = field(default_factory=list)


def new_group_id() -> str:
    return f"group-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def is_supported_image_key(key: str) -> bool:
    return bool(SUPPORTED_IMAGE_KEY.search(key or ""))


def group_images_by_face(
    images: Sequence[StoredImage],
    compare: Comparator,
    threshold: Optional[float] = None,
) -> List[FaceGroup]:
    """Partitionne les images (déjà annotées par DetectFaces) en groupes de visages."""
    if threshold is None:
        threshold = settings.GROUPING_SIMILARITY_THRESHOLD

    groups: List[FaceGroup] = []
    assigned: Set[str] = set()
    calls = 0

    for image in images:
        if image.url in assigned or not image.faces:
            continue

        group = FaceGroup(face_id=new_group_id(), images=[image])
        for other in images:
            if other.url == image.url or other.url in assigned or not other.faces:
                continue
            if not (is_supported_image_key(image.key) and is_supported_image_key(other.key)):
                logger.info(f"[FaceGrouping] Skipping unsupported image format: {image.key} / {other.key}")
                continue

            calls += 1
            outcome = compare(image.key, other.key, threshold)
            if outcome.is_match:
                group.images.append(other)
                assigned.add(other.url)

        assigned.add(image.url)
        groups.append(group)

    logger.info(f"[FaceGrouping] {len(images)} images -> {len(groups)} groups ({calls} comparisons)")
    return groups
