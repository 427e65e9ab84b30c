"""
Recherche des photos d'un utilisateur à partir d'un selfie.

Le selfie est uploadé sous {role}/{dossier}/selfies/, puis comparé (CompareFaces,
seuil 95) à chaque objet stocké sous {role}/{dossier}/, selfies exclus. Une
candidate en erreur ne stoppe jamais le balayage.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from aws_metrics import aws_metrics
from face_grouping import Comparator
from identity import UserContext
from rekognition_service import ComparisonOutcome
from s3_service import SELFIES_DIR, S3Service, selfie_key
from settings import settings

logger = logging.getLogger("app.selfie")


@dataclass
class SelfieMatchResult:
    # (url, similarité), triées par similarité décroissante
    matches: List[Tuple[str, float]] = field(default_factory=list)
    processed: int = 0

    @property
    def urls(self) -> List[str]:
        return [url for url, _ in self.matches]

    @property
    def message(self) -> str:
        return f"Found {len(self.matches)} high-confidence matches out of {self.processed} images processed."


def candidate_keys(all_keys: List[str], user: UserContext) -> List[str]:
    """Exclut le marqueur de préfixe et tout ce qui est sous selfies/."""
    root = user.root_prefix
    return [k for k in all_keys if k and k != root and f"/{SELFIES_DIR}/" not in k]


def match_selfie(
    s3: S3Service,
    compare: Comparator,
    user: UserContext,
    selfie_filename: str,
    threshold: Optional[float] = None,
    max_workers: Optional[int] = None,
) -> SelfieMatchResult:
    """Compare un selfie déjà uploadé à toutes les images de l'utilisateur."""
    if threshold is None:
        threshold = settings.SELFIE_SIMILARITY_THRESHOLD
    max_workers = max_workers or settings.SELFIE_COMPARE_MAX_WORKERS

    source = selfie_key(user, selfie_filename)

    def _compare(key: str) -> ComparisonOutcome:
        return compare(source, key, threshold)

    action = f"selfie_match:{user.folder}"

    def _compare_in_worker(key: str) -> ComparisonOutcome:
        with aws_metrics.attributed_to(action):
            return _compare(key)

    with aws_metrics.action_context(action):
        keys = candidate_keys(s3.list_keys(user.root_prefix), user)
        if not keys:
            logger.info(f"[SelfieMatch] No images found under {user.root_prefix}")

        if max_workers > 1 and len(keys) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                outcomes = list(pool.map(_compare_in_worker, keys))
        else:
            outcomes = [_compare(k) for k in keys]

    found: List[Tuple[str, float]] = []
    for key, outcome in zip(keys, outcomes):
        if outcome.is_match:
            logger.info(f"[SelfieMatch] Face match found in image: {key} with similarity: {outcome.similarity}%")
            found.append((s3.url_for(key), outcome.similarity))

    # Tri décroissant puis re-filtrage côté serveur (redondant avec le seuil de la requête)
    found.sort(key=lambda m: m[1], reverse=True)
    found = [m for m in found if m[1] >= threshold]

    result = SelfieMatchResult(matches=found, processed=len(keys))
    logger.info(f"[SelfieMatch] {result.message}")
    return result
