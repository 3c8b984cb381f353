import logging
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional, Type

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from magicaltsutsunlist.catalog import CatalogStore
from magicaltsutsunlist.errors import ConflictError, NotFoundError, StoreError, ValidationError
from magicaltsutsunlist.models import Anime, AnimeEntry, Manga, MangaEntry, User
from magicaltsutsunlist.schemas import CatalogItem

logger = logging.getLogger(__name__)

DROP_STATUS = "Drop"
GENRE_SEPARATOR = ", "


@dataclass(frozen=True)
class ListKind:
    name: str
    label: str
    reference_model: Type
    reference_key: str
    entry_model: Type


ANIME = ListKind("anime", "Anime", Anime, "anime_id", AnimeEntry)
MANGA = ListKind("manga", "Manga", Manga, "manga_id", MangaEntry)
KINDS = {kind.name: kind for kind in (ANIME, MANGA)}


def get_kind(name: str) -> ListKind:
    try:
        return KINDS[name]
    except KeyError:
        raise ValidationError(f"Unknown list kind: {name}") from None


@dataclass
class StatusResult:
    action: str
    entry: Optional[object] = None

    @property
    def removed(self) -> bool:
        return self.action == "removed"


@dataclass
class SyncReport:
    kind: str
    total: int = 0
    inserted: int = 0
    existing: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def join_genres(genres) -> str:
    if genres is None or isinstance(genres, str):
        raise ValidationError("genres must be a list of strings.")
    try:
        return GENRE_SEPARATOR.join(genres)
    except TypeError:
        raise ValidationError("genres must be a list of strings.") from None


def _find_entry(session: Session, kind: ListKind, user_id: int, catalog_id: str):
    model = kind.entry_model
    return (
        session.execute(
            select(model)
            .where(model.user_id == user_id, model.catalog_id == catalog_id)
            .limit(1)
        )
        .scalars()
        .first()
    )


def _update_status(session: Session, entry, status: str):
    entry.status = status
    session.commit()
    return entry


def set_status(
    session: Session, kind: ListKind, user_id: int, item: CatalogItem, status: str
) -> StatusResult:
    """Create, update or drop the user's entry for one catalog item.

    "Drop" deletes the entry. Any other status creates the entry with a
    snapshot of the item, or changes only the status of an existing one;
    the snapshot fields are never refreshed.
    """
    if not status or not status.strip():
        raise ValidationError("status is required.")
    if status == DROP_STATUS:
        if remove_entry(session, kind, user_id, item.id):
            return StatusResult("removed")
        return StatusResult("not_found")

    genres = join_genres(item.genres)
    try:
        existing = _find_entry(session, kind, user_id, item.id)
        if existing:
            return StatusResult("updated", _update_status(session, existing, status))
        entry = kind.entry_model(
            user_id=user_id,
            catalog_id=item.id,
            title=item.title,
            synopsis=item.synopsis,
            image=item.image,
            genres=genres,
            status=status,
        )
        session.add(entry)
        session.commit()
        return StatusResult("created", entry)
    except IntegrityError as exc:
        session.rollback()
        return _resolve_conflict(session, kind, user_id, item.id, status, exc)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(
            "Error adding %s %s to the list of user %s: %s", kind.name, item.id, user_id, exc
        )
        raise StoreError(f"Error adding {kind.name}.") from exc


def _resolve_conflict(
    session: Session, kind: ListKind, user_id: int, catalog_id: str, status: str, exc: Exception
) -> StatusResult:
    # A concurrent insert for the same pair wins the unique key; apply ours as an update.
    try:
        existing = _find_entry(session, kind, user_id, catalog_id)
        if existing:
            logger.info(
                "Concurrent insert of %s %s for user %s, updating instead",
                kind.name,
                catalog_id,
                user_id,
            )
            return StatusResult("updated", _update_status(session, existing, status))
        reference = session.get(kind.reference_model, catalog_id)
        user = session.get(User, user_id)
    except SQLAlchemyError as retry_exc:
        session.rollback()
        logger.error("Error retrying %s %s for user %s: %s", kind.name, catalog_id, user_id, retry_exc)
        raise StoreError(f"Error adding {kind.name}.") from retry_exc
    logger.warning(
        "Rejected %s %s for user %s: %s", kind.name, catalog_id, user_id, exc
    )
    if reference is None:
        raise NotFoundError(
            f"{kind.label} {catalog_id} is not in the synchronized catalog."
        ) from exc
    if user is None:
        raise NotFoundError(f"User {user_id} not found.") from exc
    raise ConflictError(
        f"Could not save {kind.name} {catalog_id} for user {user_id}."
    ) from exc


def remove_entry(session: Session, kind: ListKind, user_id: int, catalog_id: str) -> bool:
    model = kind.entry_model
    try:
        result = session.execute(
            delete(model).where(model.user_id == user_id, model.catalog_id == catalog_id)
        )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(
            "Error removing %s %s from the list of user %s: %s", kind.name, catalog_id, user_id, exc
        )
        raise StoreError(f"Error deleting {kind.name}.") from exc
    return result.rowcount > 0


def list_entries(session: Session, kind: ListKind, user_id: int) -> List:
    model = kind.entry_model
    try:
        return (
            session.execute(select(model).where(model.user_id == user_id).order_by(model.id))
            .scalars()
            .all()
        )
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Error retrieving the %s list of user %s: %s", kind.name, user_id, exc)
        raise StoreError("Error fetching the list.") from exc


def _reference_exists(session: Session, model, catalog_id: str) -> bool:
    try:
        return session.get(model, catalog_id) is not None
    except SQLAlchemyError:
        session.rollback()
        return False


def upsert_reference_rows(session: Session, kind: ListKind, catalog_ids: Iterable[str]) -> SyncReport:
    report = SyncReport(kind=kind.name)
    model = kind.reference_model
    key = getattr(model, kind.reference_key)
    try:
        known = set(session.execute(select(key)).scalars().all())
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Error reading %s reference rows: %s", kind.name, exc)
        raise StoreError(f"Error synchronizing the {kind.name}s.") from exc

    for catalog_id in catalog_ids:
        report.total += 1
        if catalog_id in known:
            report.existing += 1
            continue
        try:
            session.add(model(**{kind.reference_key: catalog_id}))
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            # Another sync stored the same id after the initial read.
            if _reference_exists(session, model, catalog_id):
                known.add(catalog_id)
                report.existing += 1
            else:
                report.failed += 1
                logger.warning("Could not insert %s reference %s: %s", kind.name, catalog_id, exc)
            continue
        except SQLAlchemyError as exc:
            session.rollback()
            report.failed += 1
            logger.warning("Could not insert %s reference %s: %s", kind.name, catalog_id, exc)
            continue
        known.add(catalog_id)
        report.inserted += 1
    return report


def sync_catalog(session: Session, catalog: CatalogStore, kind: ListKind) -> SyncReport:
    catalog_ids = catalog.catalog_ids(kind.name)
    report = upsert_reference_rows(session, kind, catalog_ids)
    logger.info(
        "%s sync done. %s items, inserted %s, existing %s, failed %s.",
        kind.label,
        report.total,
        report.inserted,
        report.existing,
        report.failed,
    )
    return report
