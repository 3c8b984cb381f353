from contextlib import asynccontextmanager
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import APIRouter, Body, Depends, FastAPI, File, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

from magicaltsutsunlist import config
from magicaltsutsunlist.auth import (
    CurrentUser,
    create_access_token,
    create_reset_token,
    get_current_user,
    read_reset_token,
    require_role,
)
from magicaltsutsunlist.catalog import CatalogStore, open_client
from magicaltsutsunlist.db import SessionLocal, engine, get_db
from magicaltsutsunlist.errors import NotFoundError, StoreError, TrackerError, ValidationError
from magicaltsutsunlist.mailer import send_reset_email
from magicaltsutsunlist.models import Base
from magicaltsutsunlist.schemas import (
    AnimeStatusRequest,
    CatalogItem,
    ConfirmPasswordRequest,
    LoginRequest,
    LoginResponse,
    MangaStatusRequest,
    MessageResponse,
    NewCatalogItemResponse,
    ResetRequest,
    RoleResponse,
    SeasonalAnime,
    SignUpRequest,
    SignUpResponse,
    StatusChangeResponse,
    SyncReportResponse,
    TrackingEntryResponse,
    UploadResponse,
    UserResponse,
)
from magicaltsutsunlist.seasonal import fetch_seasonal_anime
from magicaltsutsunlist.services import (
    ANIME,
    KINDS,
    MANGA,
    ListKind,
    list_entries,
    remove_entry,
    set_status,
    sync_catalog,
)
from magicaltsutsunlist.users import (
    authenticate,
    ensure_admin,
    get_registered_user,
    sign_up,
    update_password,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()
require_admin = require_role(config.ADMIN_ROLE)


def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def run_scheduled_sync(catalog: CatalogStore) -> None:
    db = SessionLocal()
    try:
        for kind in KINDS.values():
            try:
                sync_catalog(db, catalog, kind)
            except TrackerError as exc:
                logger.error("Scheduled %s sync failed: %s", kind.name, exc.message)
    finally:
        db.close()


def seed_admin() -> None:
    if not config.ADMIN_EMAIL or not config.ADMIN_PASSWORD:
        logger.info("ADMIN_EMAIL or ADMIN_PASSWORD not set, skipping admin creation.")
        return
    db = SessionLocal()
    try:
        ensure_admin(db, config.ADMIN_EMAIL, config.ADMIN_PASSWORD, config.ADMIN_USERNAME)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.SECRET_KEY == config.DEFAULT_SECRET_KEY:
        logger.warning("SECRET_KEY is not set; using the development default.")
    Base.metadata.create_all(bind=engine)
    os.makedirs(os.path.join(config.UPLOAD_DIR, "uploads"), exist_ok=True)
    client = open_client()
    app.state.catalog = CatalogStore.from_client(client)
    seed_admin()
    if config.CATALOG_SYNC_HOURS > 0:
        scheduler.add_job(
            run_scheduled_sync,
            "interval",
            hours=config.CATALOG_SYNC_HOURS,
            args=[app.state.catalog],
            id="catalog_sync",
            replace_existing=True,
        )
        scheduler.start()
    yield
    if scheduler.running:
        scheduler.shutdown()
    client.close()


app = FastAPI(title="MagicalTsutsunList", docs_url="/api-docs", lifespan=lifespan)
app.mount(
    "/uploads",
    StaticFiles(directory=os.path.join(config.UPLOAD_DIR, "uploads"), check_dir=False),
    name="uploads",
)

router = APIRouter(prefix=config.API_PREFIX)


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/role", response_model=RoleResponse)
def read_role(user: CurrentUser = Depends(get_current_user)):
    return {"role": user.role}


# Catalog


@router.get("/seasonal-anime", response_model=List[SeasonalAnime])
def seasonal_anime():
    return fetch_seasonal_anime()


def _sync(kind: ListKind, db: Session, catalog: CatalogStore):
    return sync_catalog(db, catalog, kind).as_dict()


@router.get("/sync-and-insert-anime", response_model=SyncReportResponse)
def sync_anime(db: Session = Depends(get_db), catalog: CatalogStore = Depends(get_catalog)):
    return _sync(ANIME, db, catalog)


@router.get("/sync-and-insert-manga", response_model=SyncReportResponse)
def sync_manga(db: Session = Depends(get_db), catalog: CatalogStore = Depends(get_catalog)):
    return _sync(MANGA, db, catalog)


@router.get("/collections/animes")
def all_animes(
    user: CurrentUser = Depends(get_current_user),
    catalog: CatalogStore = Depends(get_catalog),
):
    return catalog.all_items(ANIME.name)


@router.get("/collections/mangas")
def all_mangas(
    user: CurrentUser = Depends(get_current_user),
    catalog: CatalogStore = Depends(get_catalog),
):
    return catalog.all_items(MANGA.name)


# Users


@router.post("/user/signup", response_model=SignUpResponse, status_code=201)
def signup(payload: SignUpRequest, db: Session = Depends(get_db)):
    user = sign_up(db, payload.username, payload.email, payload.password, payload.role)
    return {"message": "New user registered successfully.", "user": UserResponse.model_validate(user)}


@router.post("/user/login", response_model=LoginResponse, status_code=202)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate(db, payload.login, payload.password)
    if user is None:
        raise NotFoundError("The user does not exist.")
    return {
        "message": "User logged in successfully.",
        "token": f"Bearer {create_access_token(user)}",
    }


@router.post("/user/update-pass", response_model=MessageResponse)
def request_password_reset(payload: ResetRequest, db: Session = Depends(get_db)):
    if not payload.email:
        raise ValidationError("The email field is required.")
    user = get_registered_user(db, payload.email)
    if user is None:
        raise NotFoundError("User not found.")
    token = create_reset_token(user.email)
    reset_link = f"{config.RESET_PASSWORD_URL.rstrip('/')}/{token}"
    if not send_reset_email(user.email, user.username, reset_link):
        raise StoreError("Error sending the password reset email.")
    return {"message": "Email sent with password reset instructions."}


@router.post("/user/confirm-pass/{token}", response_model=MessageResponse)
def confirm_password(token: str, payload: ConfirmPasswordRequest, db: Session = Depends(get_db)):
    email = read_reset_token(token)
    if not update_password(db, email, payload.password):
        raise NotFoundError("User not found.")
    return {"message": "Password updated successfully."}


# Personal lists


def _status_response(kind: ListKind, db: Session, user: CurrentUser, item: CatalogItem, status: str):
    result = set_status(db, kind, user.id, item, status)
    if result.action == "not_found":
        raise NotFoundError(f"{kind.label} not found in the list.")
    if result.removed:
        body = StatusChangeResponse(message=f"{kind.label} removed from the list.")
        return JSONResponse(status_code=200, content=jsonable_encoder(body))
    body = StatusChangeResponse(
        message=f"{kind.label} successfully added/updated.",
        entry=TrackingEntryResponse.model_validate(result.entry),
    )
    return JSONResponse(status_code=201, content=jsonable_encoder(body))


def _remove(kind: ListKind, db: Session, user: CurrentUser, catalog_id: str):
    if not remove_entry(db, kind, user.id, catalog_id):
        raise NotFoundError(f"{kind.label} not found in the list.")
    return {"message": f"{kind.label} successfully deleted."}


@router.post("/user/anime-status/add", response_model=StatusChangeResponse, status_code=201)
def add_anime_status(
    payload: AnimeStatusRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return _status_response(ANIME, db, user, payload.anime_data, payload.status)


@router.get("/user/anime-status/list", response_model=List[TrackingEntryResponse])
def anime_list(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return list_entries(db, ANIME, user.id)


@router.delete("/user/anime-status/remove/{anime_id}", response_model=MessageResponse)
def remove_anime(
    anime_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return _remove(ANIME, db, user, anime_id)


@router.post("/user/manga-status/add", response_model=StatusChangeResponse, status_code=201)
def add_manga_status(
    payload: MangaStatusRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return _status_response(MANGA, db, user, payload.manga_data, payload.status)


@router.get("/user/manga-status/list", response_model=List[TrackingEntryResponse])
def manga_list(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return list_entries(db, MANGA, user.id)


@router.delete("/user/manga-status/remove/{manga_id}", response_model=MessageResponse)
def remove_manga(
    manga_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return _remove(MANGA, db, user, manga_id)


# Admin


def _save_image(kind: ListKind, image: UploadFile) -> Dict[str, Any]:
    filename = Path(image.filename or "").name
    if not filename:
        raise ValidationError("An image file is required.")
    target_dir = Path(config.UPLOAD_DIR) / "uploads" / f"{kind.name}s"
    target_dir.mkdir(parents=True, exist_ok=True)
    try:
        with open(target_dir / filename, "wb") as handle:
            shutil.copyfileobj(image.file, handle)
    except OSError as exc:
        logger.error("Error uploading the image %s: %s", filename, exc)
        raise StoreError("Error uploading the image.") from exc
    return {
        "message": "Image uploaded successfully.",
        "filePath": f"/uploads/{kind.name}s/{filename}",
    }


@router.post("/admin/anime-image/upload", response_model=UploadResponse)
def upload_anime_image(image: UploadFile = File(...), user: CurrentUser = Depends(require_admin)):
    return _save_image(ANIME, image)


@router.post("/admin/manga-image/upload", response_model=UploadResponse)
def upload_manga_image(image: UploadFile = File(...), user: CurrentUser = Depends(require_admin)):
    return _save_image(MANGA, image)


@router.post("/admin/new-anime/upload", response_model=NewCatalogItemResponse, status_code=201)
def new_anime(
    document: Dict[str, Any] = Body(...),
    user: CurrentUser = Depends(require_admin),
    catalog: CatalogStore = Depends(get_catalog),
):
    return {"message": "Anime added successfully.", "id": catalog.add_item(ANIME.name, document)}


@router.post("/admin/new-manga/upload", response_model=NewCatalogItemResponse, status_code=201)
def new_manga(
    document: Dict[str, Any] = Body(...),
    user: CurrentUser = Depends(require_admin),
    catalog: CatalogStore = Depends(get_catalog),
):
    return {"message": "Manga added successfully.", "id": catalog.add_item(MANGA.name, document)}


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
