from fastapi import FastAPI, Depends, HTTPException, UploadFile, File, Body, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from settings import settings
from database import get_db, create_tables
from models import Event
from schemas import (
    AuthConfig,
    Event as EventSchema,
    EventCreate,
    EventGallery as EventGallerySchema,
    EventSave,
    SelfieMatches,
    SessionRequest,
    Token,
    UploadResult,
)
from identity import (
    IdentityRequiredError,
    UserContext,
    build_user_context,
    create_access_token,
    get_user_context,
)
from repository import EventRepository
from s3_service import S3Service, StorageError, get_s3_service
from rekognition_service import RekognitionService, get_rekognition_service
from uploads import IncomingFile, UploadValidationError, upload_batch, upload_selfie
from selfie_matching import match_selfie
from events import load_event_gallery, save_event, upload_event_images
from qr_codes import event_page_url, make_qr_png, png_data_url, selfie_upload_url
from aws_metrics import aws_metrics

logger = logging.getLogger("app")
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(settings.LOG_LEVEL.upper())

app = FastAPI(title="Event Photo Finder API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Créer les tables au démarrage (non-bloquant)
@app.on_event("startup")
def _startup_create_tables():
    """Créer les tables au démarrage, mais ne pas bloquer si la DB est indisponible."""
    try:
        create_tables()
        logger.info("[Startup] Database tables created/verified")
    except Exception as e:
        logger.warning(f"[Startup] Could not create tables (non-critical): {e}")
    if not settings.is_s3_configured:
        logger.warning("[Startup] S3_BUCKET_NAME is not set; uploads and matching will fail")


# === GESTION DES ERREURS ===

@app.exception_handler(UploadValidationError)
async def _upload_validation_error(request: Request, exc: UploadValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})

@app.exception_handler(IdentityRequiredError)
async def _identity_required_error(request: Request, exc: IdentityRequiredError):
    return JSONResponse(status_code=401, content={"detail": str(exc)})


# === DÉPENDANCES ===

def get_event_repository(db: Session = Depends(get_db)) -> EventRepository:
    return EventRepository(db)

def get_storage() -> S3Service:
    return get_s3_service()

def get_vision() -> RekognitionService:
    return get_rekognition_service()

def _get_event_or_404(repo: EventRepository, event_id: str) -> Event:
    event = repo.get(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event

def _public_origin(request: Request) -> str:
    return (settings.PUBLIC_BASE_URL or str(request.base_url)).rstrip("/")

def _to_incoming(file: UploadFile) -> IncomingFile:
    return IncomingFile(
        filename=file.filename or "upload",
        content_type=file.content_type or "",
        data=file.file.read(),
    )


# === ROUTES ===

@app.get("/api")
async def api_root():
    return {"message": "Event Photo Finder API", "version": app.version}

@app.get("/api/config", response_model=AuthConfig)
async def get_auth_config():
    """Sans client OAuth configuré, le front s'affiche sans le widget de connexion."""
    client_id = settings.GOOGLE_CLIENT_ID or None
    return AuthConfig(google_client_id=client_id, auth_widget_enabled=bool(client_id))

@app.post("/api/session", response_model=Token)
async def create_session(payload: SessionRequest):
    """Échange l'identité issue du widget de connexion contre un jeton d'accès"""
    user = build_user_context(payload.email, payload.name, payload.role)
    logger.info(f"[Session] session opened for {user.root_prefix}")
    return Token(access_token=create_access_token(user), token_type="bearer")

# === ÉVÉNEMENTS ===

@app.get("/api/events", response_model=List[EventSchema])
def list_events(
    user: UserContext = Depends(get_user_context),
    repo: EventRepository = Depends(get_event_repository),
):
    """Tableau de bord: événements créés par l'utilisateur courant"""
    return repo.list_for_owner(user.folder)

@app.post("/api/events", response_model=EventSchema, status_code=201)
def create_event(
    payload: EventCreate,
    user: UserContext = Depends(get_user_context),
    repo: EventRepository = Depends(get_event_repository),
):
    return repo.create(payload.name, payload.date, payload.location, owner=user.folder)

@app.get("/api/events/{event_id}", response_model=EventSchema)
def get_event(event_id: str, repo: EventRepository = Depends(get_event_repository)):
    return _get_event_or_404(repo, event_id)

@app.post("/api/events/{event_id}/save", response_model=EventSchema)
def save_event_route(
    event_id: str,
    payload: Optional[EventSave] = Body(None),
    user: UserContext = Depends(get_user_context),
    repo: EventRepository = Depends(get_event_repository),
    s3: S3Service = Depends(get_storage),
):
    """Range les images hors dossier dans l'événement et persiste la liste"""
    event = _get_event_or_404(repo, event_id)
    image_urls = payload.image_urls if payload else None
    try:
        return save_event(repo, s3, event, user, image_urls)
    except StorageError:
        raise HTTPException(status_code=502, detail="Failed to save event. Please try again.")

@app.post("/api/events/{event_id}/images", response_model=UploadResult)
def upload_event_images_route(
    event_id: str,
    files: List[UploadFile] = File(...),
    user: UserContext = Depends(get_user_context),
    repo: EventRepository = Depends(get_event_repository),
    s3: S3Service = Depends(get_storage),
):
    """Upload d'un lot de photos dans le dossier de l'événement"""
    event = _get_event_or_404(repo, event_id)
    incoming = [_to_incoming(f) for f in files]
    try:
        urls = upload_event_images(repo, s3, event, user, incoming)
    except StorageError:
        raise HTTPException(status_code=502, detail="Failed to upload images. Please try again.")
    return UploadResult(message=f"{len(urls)} images uploaded", uploaded_urls=urls)

@app.get("/api/events/{event_id}/gallery", response_model=EventGallerySchema)
def get_event_gallery(
    event_id: str,
    user: UserContext = Depends(get_user_context),
    repo: EventRepository = Depends(get_event_repository),
    s3: S3Service = Depends(get_storage),
    vision: RekognitionService = Depends(get_vision),
):
    """Images de l'événement, visages détectés et groupes de visages (recalculés à chaque appel)"""
    event = _get_event_or_404(repo, event_id)
    try:
        gallery = load_event_gallery(s3, vision, event, user)
    except StorageError:
        raise HTTPException(status_code=502, detail="Failed to load event images. Please try again.")
    return {
        "event": EventSchema.model_validate(event),
        "images": [{"url": img.url, "faces": img.faces} for img in gallery.images],
        "face_groups": [
            {"face_id": g.face_id, "images": [img.url for img in g.images]}
            for g in gallery.groups
        ],
    }

@app.get("/api/events/{event_id}/qr-code")
def get_event_qr_code(
    event_id: str,
    request: Request,
    repo: EventRepository = Depends(get_event_repository),
):
    """QR code PNG de la page de l'événement"""
    _get_event_or_404(repo, event_id)
    png = make_qr_png(event_page_url(_public_origin(request), event_id))
    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="event-{event_id}-qr.png"'},
    )

# === UPLOADS ===

@app.post("/api/uploads", response_model=UploadResult)
def upload_images(
    request: Request,
    files: List[UploadFile] = File(...),
    user: UserContext = Depends(get_user_context),
    s3: S3Service = Depends(get_storage),
):
    """Upload d'un lot de photos à la racine de l'utilisateur"""
    incoming = [_to_incoming(f) for f in files]
    with aws_metrics.action_context(f"upload:{user.folder}"):
        try:
            urls = upload_batch(s3, incoming, user)
        except StorageError:
            raise HTTPException(status_code=502, detail="Failed to upload images. Please try again.")
    qr = png_data_url(make_qr_png(selfie_upload_url(_public_origin(request))))
    return UploadResult(message=f"{len(urls)} images uploaded", uploaded_urls=urls, selfie_qr_code=qr)

@app.get("/api/uploads/selfie-qr-code")
def get_selfie_qr_code(request: Request):
    """QR code PNG vers la page d'upload de selfie"""
    png = make_qr_png(selfie_upload_url(_public_origin(request)))
    return Response(content=png, media_type="image/png")

@app.post("/api/selfies", response_model=SelfieMatches)
def upload_selfie_and_match(
    file: Optional[UploadFile] = File(None),
    user: UserContext = Depends(get_user_context),
    s3: S3Service = Depends(get_storage),
    vision: RekognitionService = Depends(get_vision),
):
    """Upload d'un selfie puis recherche des photos correspondantes"""
    incoming = _to_incoming(file) if file is not None else None
    try:
        filename = upload_selfie(s3, incoming, user)
    except StorageError:
        raise HTTPException(status_code=502, detail="Error uploading selfie. Please try again.")
    try:
        result = match_selfie(s3, vision.compare_faces, user, filename)
    except StorageError:
        raise HTTPException(status_code=502, detail="Error comparing faces. Please try again.")
    return SelfieMatches(matched_urls=result.urls, message=result.message)

# === ADMIN ===

@app.get("/api/admin/aws-usage")
async def get_aws_usage(user: UserContext = Depends(get_user_context)):
    return aws_metrics.snapshot()
