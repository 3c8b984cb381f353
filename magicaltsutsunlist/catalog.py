import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from magicaltsutsunlist.config import (
    MONGO_ANIME_COLLECTION,
    MONGO_DB,
    MONGO_MANGA_COLLECTION,
    MONGO_URI,
)
from magicaltsutsunlist.errors import StoreError, ValidationError

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "anime": MONGO_ANIME_COLLECTION,
    "manga": MONGO_MANGA_COLLECTION,
}


def open_client(uri: str = MONGO_URI) -> MongoClient:
    return MongoClient(uri, serverSelectionTimeoutMS=5000)


def serialize(document: Dict[str, Any]) -> Dict[str, Any]:
    document = dict(document)
    document["_id"] = str(document["_id"])
    return document


class CatalogStore:
    """Anime and manga documents of record, one collection per kind."""

    def __init__(self, db: Database, collections: Optional[Dict[str, str]] = None):
        self.db = db
        self.collections = collections or COLLECTIONS

    @classmethod
    def from_client(cls, client: MongoClient, db_name: str = MONGO_DB) -> "CatalogStore":
        return cls(client[db_name])

    def _collection(self, kind: str):
        try:
            return self.db[self.collections[kind]]
        except KeyError:
            raise ValidationError(f"Unknown catalog kind: {kind}") from None

    def all_items(self, kind: str) -> List[Dict[str, Any]]:
        try:
            return [serialize(doc) for doc in self._collection(kind).find({})]
        except PyMongoError as exc:
            logger.error("Error reading the %s catalog: %s", kind, exc)
            raise StoreError(f"Error reading the {kind} catalog.") from exc

    def catalog_ids(self, kind: str) -> List[str]:
        try:
            return [str(doc["_id"]) for doc in self._collection(kind).find({}, {"_id": 1})]
        except PyMongoError as exc:
            logger.error("Error reading %s catalog ids: %s", kind, exc)
            raise StoreError(f"Error reading the {kind} catalog.") from exc

    def get_item(self, kind: str, catalog_id: str) -> Optional[Dict[str, Any]]:
        try:
            key: Any = ObjectId(catalog_id)
        except (InvalidId, TypeError):
            key = catalog_id
        try:
            doc = self._collection(kind).find_one({"_id": key})
        except PyMongoError as exc:
            logger.error("Error reading %s %s: %s", kind, catalog_id, exc)
            raise StoreError(f"Error reading the {kind} catalog.") from exc
        return serialize(doc) if doc else None

    def add_item(self, kind: str, document: Dict[str, Any]) -> str:
        title = document.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValidationError(f"A {kind} needs a title.")
        document = {key: value for key, value in document.items() if key != "_id"}
        try:
            result = self._collection(kind).insert_one(document)
        except PyMongoError as exc:
            logger.error("Error saving the %s %r: %s", kind, title, exc)
            raise StoreError(f"Error saving the {kind}.") from exc
        logger.info("Added %s %s (%s)", kind, result.inserted_id, title)
        return str(result.inserted_id)
