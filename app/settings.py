"""
Configuration centralisée de l'application Event Photo Finder.

Utilise Pydantic Settings pour charger les variables d'environnement
avec validation de type et valeurs par défaut.

Usage:
    from settings import settings

    bucket = settings.S3_BUCKET_NAME
    threshold = settings.SELFIE_SIMILARITY_THRESHOLD
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


MIB = 1024 * 1024


class Settings(BaseSettings):
    """
    Configuration centralisée de l'application.
    Toutes les valeurs peuvent être surchargées par des variables d'environnement.
    """

    model_config = SettingsConfigDict(
        # Nom du fichier .env à charger (si présent)
        env_file=".env",
        env_file_encoding="utf-8",
        # Ignorer les variables d'environnement inconnues
        extra="ignore",
        case_sensitive=True,
    )

    # ========== AWS General ==========
    AWS_REGION: str = "us-east-1"
    # Région spécifique pour Rekognition (vide = même région que S3)
    REKOGNITION_REGION: str = ""

    # ========== S3 Storage ==========
    S3_BUCKET_NAME: str = ""
    # URL publique construite par concaténation (pas d'URL signée)
    S3_PUBLIC_URL_TEMPLATE: str = "https://{bucket}.s3.amazonaws.com/{key}"
    # Taille des parts multipart (et seuil de bascule en multipart)
    UPLOAD_PART_SIZE_BYTES: int = 5 * MIB

    # ========== Upload validation ==========
    MAX_IMAGE_UPLOAD_BYTES: int = 10 * MIB
    MAX_SELFIE_UPLOAD_BYTES: int = 5 * MIB
    SELFIE_ALLOWED_CONTENT_TYPES: str = "image/jpeg,image/png"

    # ========== AWS Rekognition ==========
    # Seuil CompareFaces pour le regroupement des photos d'un événement
    GROUPING_SIMILARITY_THRESHOLD: float = 90.0
    # Seuil CompareFaces (et post-filtre) pour la recherche par selfie
    SELFIE_SIMILARITY_THRESHOLD: float = 95.0
    # 1 = comparaisons strictement séquentielles
    SELFIE_COMPARE_MAX_WORKERS: int = 1

    # ========== Database ==========
    DATABASE_URL: str = "sqlite:///./event_photos.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 1800
    DB_POOL_TIMEOUT: int = 30

    # ========== Application ==========
    LOG_LEVEL: str = "INFO"
    # Origine utilisée dans les QR codes (vide = URL de la requête)
    PUBLIC_BASE_URL: str = ""
    CORS_ALLOW_ORIGINS: str = "*"

    # ========== Authentication / JWT ==========
    # Clé secrète pour signer les JWT (OBLIGATOIRE en prod)
    SECRET_KEY: str = "your-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    # 480 = 8 heures, la durée d'une soirée
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480
    # Client OAuth Google du widget de connexion (vide = widget désactivé)
    GOOGLE_CLIENT_ID: str = ""

    @property
    def is_s3_configured(self) -> bool:
        """Vérifie si S3 est configuré pour le stockage des photos."""
        return bool(self.S3_BUCKET_NAME)

    @property
    def rekognition_region(self) -> str:
        return self.REKOGNITION_REGION or self.AWS_REGION

    @property
    def selfie_content_types(self) -> List[str]:
        return [t.strip().lower() for t in self.SELFIE_ALLOWED_CONTENT_TYPES.split(",") if t.strip()]

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ALLOW_ORIGINS.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Retourne l'instance singleton des settings.
    Utilise lru_cache pour éviter de recharger les settings à chaque appel.
    """
    return Settings()


# Alias pour un accès direct
settings = get_settings()
