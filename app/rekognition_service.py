import enum
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from aws_metrics import aws_metrics
from settings import settings

logger = logging.getLogger("app.vision")

# Codes Rekognition qui signifient "rien à comparer" plutôt qu'une panne
SKIP_ERROR_CODES = {
    "InvalidImageFormatException": "invalid image format",
    "InvalidParameterException": "no face detected",
}


class CompareStatus(str, enum.Enum):
    MATCHED = "matched"
    NOT_MATCHED = "not_matched"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ComparisonOutcome:
    """Résultat d'une comparaison de visages. Seul MATCHED compte comme correspondance."""

    status: CompareStatus
    similarity: float = 0.0
    reason: Optional[str] = None

    @classmethod
    def matched(cls, similarity: float) -> "ComparisonOutcome":
        return cls(CompareStatus.MATCHED, similarity=float(similarity))

    @classmethod
    def not_matched(cls) -> "ComparisonOutcome":
        return cls(CompareStatus.NOT_MATCHED)

    @classmethod
    def skipped(cls, reason: str) -> "ComparisonOutcome":
        return cls(CompareStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> "ComparisonOutcome":
        return cls(CompareStatus.FAILED, reason=reason)

    @property
    def is_match(self) -> bool:
        return self.status == CompareStatus.MATCHED


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


class RekognitionService:
    """
    Appels DetectFaces / CompareFaces sur des objets S3 déjà uploadés.
    Aucun retry: chaque erreur est convertie en résultat négatif.
    """

    def __init__(self, client=None, bucket: Optional[str] = None):
        self._client = client
        self.bucket = bucket or settings.S3_BUCKET_NAME

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("rekognition", region_name=settings.rekognition_region)
            logger.info(f"[FaceRecognition][AWS] Using region: {settings.rekognition_region}")
        return self._client

    def _s3_image(self, key: str) -> Dict:
        return {"S3Object": {"Bucket": self.bucket, "Name": key}}

    def detect_faces(self, key: str) -> List[Dict]:
        """DetectFaces (attributs par défaut). Retourne [] en cas d'erreur."""
        try:
            aws_metrics.inc('DetectFaces')
            resp = self.client.detect_faces(Image=self._s3_image(key), Attributes=["DEFAULT"])
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"[FaceRecognition] DetectFaces error for {key}: {e}")
            return []
        return [
            {
                "bounding_box": f.get("BoundingBox") or {},
                "confidence": float(f.get("Confidence", 0.0)),
            }
            for f in (resp.get("FaceDetails") or [])
        ]

    def compare_faces(self, source_key: str, target_key: str, threshold: float) -> ComparisonOutcome:
        """CompareFaces source vs cible; garde la meilleure similarité retournée."""
        try:
            aws_metrics.inc('CompareFaces')
            resp = self.client.compare_faces(
                SourceImage=self._s3_image(source_key),
                TargetImage=self._s3_image(target_key),
                SimilarityThreshold=threshold,
            )
        except ClientError as e:
            code = _error_code(e)
            if code in SKIP_ERROR_CODES:
                logger.info(f"[FaceRecognition] Skipping {target_key}: {SKIP_ERROR_CODES[code]}")
                return ComparisonOutcome.skipped(SKIP_ERROR_CODES[code])
            logger.error(f"[FaceRecognition] CompareFaces error {source_key} vs {target_key}: {e}")
            return ComparisonOutcome.failed(code or str(e))
        except BotoCoreError as e:
            logger.error(f"[FaceRecognition] CompareFaces error {source_key} vs {target_key}: {e}")
            return ComparisonOutcome.failed(str(e))

        matches = resp.get("FaceMatches") or []
        if not matches:
            return ComparisonOutcome.not_matched()
        best = max(float(m.get("Similarity") or 0.0) for m in matches)
        return ComparisonOutcome.matched(best)


_rekognition_service: Optional[RekognitionService] = None


def get_rekognition_service() -> RekognitionService:
    """Retourne l'instance singleton du service Rekognition."""
    global _rekognition_service
    if _rekognition_service is None:
        _rekognition_service = RekognitionService()
    return _rekognition_service
