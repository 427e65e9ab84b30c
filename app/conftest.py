"""Shared test fixtures: fake boto3 clients, in-memory database, API client."""

import os

# Avant tout import applicatif: settings est un singleton lu à l'import
os.environ["S3_BUCKET_NAME"] = "test-bucket"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SELFIE_COMPARE_MAX_WORKERS"] = "1"

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import create_tables, get_db
from identity import UserContext, create_access_token
from models import UserRole
from rekognition_service import RekognitionService
from repository import EventRepository
from s3_service import S3Service

MIB = 1024 * 1024
BUCKET = "test-bucket"


def client_error(code: str, operation: str = "CompareFaces") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakePaginator:
    def __init__(self, client, page_size: int = 2):
        self.client = client
        self.page_size = page_size

    def paginate(self, Bucket, Prefix):
        self.client.calls.append(("list", Prefix))
        keys = sorted(k for k in self.client.objects if k.startswith(Prefix))
        if not keys:
            yield {"KeyCount": 0}
            return
        for i in range(0, len(keys), self.page_size):
            yield {"Contents": [{"Key": k} for k in keys[i:i + self.page_size]]}


class FakeS3Client:
    """Sous-ensemble de l'API boto3 S3 utilisé par S3Service, en mémoire."""

    def __init__(self):
        self.objects = {}
        self.content_types = {}
        self.calls = []
        self.fail_uploads_containing = None
        self.fail_copy = False

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None, Config=None):
        self.calls.append(("upload", key))
        if self.fail_uploads_containing and self.fail_uploads_containing in key:
            raise client_error("InternalError", "PutObject")
        self.objects[key] = fileobj.read()
        self.content_types[key] = (ExtraArgs or {}).get("ContentType")

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self)

    def copy_object(self, Bucket, CopySource, Key):
        self.calls.append(("copy", CopySource["Key"], Key))
        if self.fail_copy:
            raise client_error("AccessDenied", "CopyObject")
        self.objects[Key] = self.objects[CopySource["Key"]]

    def delete_object(self, Bucket, Key):
        self.calls.append(("delete", Key))
        self.objects.pop(Key, None)

    @property
    def network_calls(self):
        return len(self.calls)


class FakeRekognitionClient:
    """DetectFaces / CompareFaces pilotés par des tables."""

    def __init__(self):
        self.face_counts = {}
        # (source, cible) -> similarités des visages trouvés
        self.pair_similarities = {}
        # cible -> similarités, quelle que soit la source (selfies)
        self.target_similarities = {}
        self.errors = {}
        self.detect_calls = []
        self.compare_calls = []

    def detect_faces(self, Image, Attributes):
        key = Image["S3Object"]["Name"]
        self.detect_calls.append(key)
        if key in self.errors:
            raise client_error(self.errors[key], "DetectFaces")
        face = {"BoundingBox": {"Left": 0.1, "Top": 0.1, "Width": 0.2, "Height": 0.2}, "Confidence": 99.5}
        return {"FaceDetails": [dict(face) for _ in range(self.face_counts.get(key, 0))]}

    def compare_faces(self, SourceImage, TargetImage, SimilarityThreshold):
        src = SourceImage["S3Object"]["Name"]
        tgt = TargetImage["S3Object"]["Name"]
        self.compare_calls.append((src, tgt, SimilarityThreshold))
        if tgt in self.errors:
            raise client_error(self.errors[tgt])
        sims = self.pair_similarities.get((src, tgt))
        if sims is None:
            sims = self.pair_similarities.get((tgt, src))
        if sims is None:
            sims = self.target_similarities.get(tgt, [])
        matches = [{"Similarity": s, "Face": {}} for s in sims if s >= SimilarityThreshold]
        return {"FaceMatches": matches, "UnmatchedFaces": []}


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def s3(s3_client):
    return S3Service(client=s3_client, bucket=BUCKET, part_size=5 * MIB)


@pytest.fixture
def rekognition_client():
    return FakeRekognitionClient()


@pytest.fixture
def vision(rekognition_client):
    return RekognitionService(client=rekognition_client, bucket=BUCKET)


@pytest.fixture
def user():
    return UserContext(email="jane.doe@example.com", name="Jane Doe", role=UserRole.USER)


@pytest.fixture
def db_session():
    """In-memory SQLite partagée entre threads (handlers sync de FastAPI)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def repo(db_session):
    return EventRepository(db_session)


@pytest.fixture
def api(db_session, s3, vision):
    """TestClient avec dépendances remplacées par les fakes."""
    from main import app, get_storage, get_vision

    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_storage] = lambda: s3
    app.dependency_overrides[get_vision] = lambda: vision
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}
