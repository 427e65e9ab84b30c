"""
Service S3 pour le stockage des photos et des selfies.

Les clés sont rangées par rôle puis par dossier utilisateur:
    {role}/{dossier}/[{event_id}/][selfies/]{horodatage}-{nom d'origine}
Les URLs publiques sont construites par concaténation (bucket public ou
accès préconfiguré), sans URL signée.
"""

import io
import logging
import time
from typing import List, Optional
from urllib.parse import urlparse

import boto3
from boto3.exceptions import Boto3Error
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from aws_metrics import aws_metrics
from identity import UserContext
from settings import settings

logger = logging.getLogger("app.storage")

SELFIES_DIR = "selfies"


class StorageError(Exception):
    """Échec d'un upload, d'une copie ou d'une suppression S3."""


def timestamped_filename(original_filename: str) -> str:
    """Préfixe le nom d'origine par l'horodatage en millisecondes."""
    return f"{int(time.time() * 1000)}-{original_filename}"


def build_object_key(
    user: UserContext,
    filename: str,
    event_id: Optional[str] = None,
    selfie: bool = False,
) -> str:
    """
    Génère une clé S3.

    Format: {role}/{dossier}/[{event_id}/][selfies/]{filename}
    """
    key = user.root_prefix
    if event_id:
        key += f"{event_id}/"
    if selfie:
        key += f"{SELFIES_DIR}/"
    return key + filename


def event_prefix(user: UserContext, event_id: str) -> str:
    return f"{user.root_prefix}{event_id}/"


def selfie_key(user: UserContext, filename: str) -> str:
    return build_object_key(user, filename, selfie=True)


def public_url(key: str, bucket: Optional[str] = None) -> str:
    return settings.S3_PUBLIC_URL_TEMPLATE.format(bucket=bucket or settings.S3_BUCKET_NAME, key=key)


def key_from_url(url: str, bucket: Optional[str] = None) -> str:
    """Inverse de public_url."""
    base = public_url("", bucket)
    if url.startswith(base):
        return url[len(base):]
    return urlparse(url).path.lstrip("/")


class S3Service:
    """Service pour les opérations S3."""

    def __init__(self, client=None, bucket: Optional[str] = None, part_size: Optional[int] = None):
        self._client = client
        self.bucket = bucket or settings.S3_BUCKET_NAME
        self.part_size = part_size or settings.UPLOAD_PART_SIZE_BYTES

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=settings.AWS_REGION)
        return self._client

    def url_for(self, key: str) -> str:
        return public_url(key, self.bucket)

    def key_for(self, url: str) -> str:
        return key_from_url(url, self.bucket)

    def upload_bytes(self, key: str, data: bytes, content_type: str) -> str:
        """
        Upload multipart (parts de taille fixe) vers S3.

        Les parts déjà envoyées sont abandonnées si l'upload échoue.

        Returns:
            str: URL publique de l'objet

        Raises:
            StorageError: En cas d'erreur S3
        """
        config = TransferConfig(multipart_threshold=self.part_size, multipart_chunksize=self.part_size)
        try:
            aws_metrics.inc('PutObject')
            self.client.upload_fileobj(
                io.BytesIO(data),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
                Config=config,
            )
        except (ClientError, BotoCoreError, Boto3Error) as e:
            logger.error(f"[S3Service] Upload failed for s3://{self.bucket}/{key}: {e}")
            raise StorageError(f"Upload failed for {key}") from e

        logger.info(f"[S3Service] Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return self.url_for(key)

    def list_keys(self, prefix: str) -> List[str]:
        """Liste toutes les clés sous un préfixe (toutes les pages)."""
        keys: List[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                aws_metrics.inc('ListObjectsV2')
                for item in page.get("Contents", []) or []:
                    key = item.get("Key")
                    if key:
                        keys.append(key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[S3Service] List failed for prefix {prefix}: {e}")
            raise StorageError(f"Listing failed for {prefix}") from e
        return keys

    def copy_object(self, source_key: str, dest_key: str) -> None:
        try:
            aws_metrics.inc('CopyObject')
            self.client.copy_object(
                Bucket=self.bucket,
                CopySource={"Bucket": self.bucket, "Key": source_key},
                Key=dest_key,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[S3Service] Copy failed {source_key} -> {dest_key}: {e}")
            raise StorageError(f"Copy failed for {source_key}") from e

    def delete_object(self, key: str) -> None:
        try:
            aws_metrics.inc('DeleteObject')
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[S3Service] Failed to delete {key}: {e}")
            raise StorageError(f"Delete failed for {key}") from e
        logger.info(f"[S3Service] Deleted s3://{self.bucket}/{key}")

    def move_object(self, source_key: str, dest_key: str) -> str:
        """Copie puis supprime la source. Retourne l'URL de la destination."""
        self.copy_object(source_key, dest_key)
        self.delete_object(source_key)
        return self.url_for(dest_key)


# Instance singleton
_s3_service: Optional[S3Service] = None


def get_s3_service() -> S3Service:
    """Retourne l'instance singleton du service S3."""
    global _s3_service
    if _s3_service is None:
        _s3_service = S3Service()
    return _s3_service
