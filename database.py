"""
Entity store

One collection per schema in ``schemas.py``. Both backends expose the same
operations:

- list(order_by=None, limit=None)
- filter(predicate, order_by=None, limit=None)
- get(id)
- create(fields)
- update(id, fields)

Ordering strings follow the "-field_name" convention for descending.
Predicates are equality maps; a value of the form {"$in": [...]} matches
any of the listed values. Records come back as plain dicts with "id" and
ISO-formatted datetimes.
"""

import copy
import itertools
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import PyMongoError

from config import Config
from errors import NotFoundError, TransientIOError
from logger import get_logger

logger = get_logger(component="database")


def to_collection_name(model_cls: Any) -> str:
    return model_cls.__name__.lower()


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = {**doc}
    _id = out.pop("_id", None)
    if _id is not None:
        out["id"] = str(_id)
    # Convert datetimes to isoformat strings
    for k, v in list(out.items()):
        if isinstance(v, datetime):
            out[k] = v.isoformat()
    return out


def parse_order(order_by: Optional[str]) -> Optional[Tuple[str, int]]:
    if not order_by:
        return None
    if order_by.startswith("-"):
        return order_by[1:], DESCENDING
    return order_by, ASCENDING


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Collection:
    """Interface shared by the Mongo and in-memory collections."""

    def __init__(self, name: str, label: str):
        self.name = name
        self.label = label

    def list(self, order_by: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.filter({}, order_by=order_by, limit=limit)

    def filter(
        self,
        predicate: Dict[str, Any],
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def get(self, entity_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update(self, entity_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


# ---------- MongoDB ----------

class MongoCollection(Collection):
    def __init__(self, db, name: str, label: str):
        super().__init__(name, label)
        self._coll = db[name]

    @staticmethod
    def _object_id(value: str) -> ObjectId:
        return ObjectId(value)

    def _to_query(self, predicate: Dict[str, Any]) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        for key, value in predicate.items():
            if key == "id":
                key = "_id"
                if isinstance(value, dict) and "$in" in value:
                    ids = []
                    for v in value["$in"]:
                        try:
                            ids.append(self._object_id(v))
                        except (InvalidId, TypeError):
                            continue
                    value = {"$in": ids}
                else:
                    try:
                        value = self._object_id(value)
                    except (InvalidId, TypeError):
                        # Unparseable ids can never match a stored record
                        value = {"$in": []}
            query[key] = value
        return query

    def filter(self, predicate, order_by=None, limit=None):
        try:
            cursor = self._coll.find(self._to_query(predicate))
            order = parse_order(order_by)
            if order:
                cursor = cursor.sort(*order)
            if limit:
                cursor = cursor.limit(limit)
            return [serialize_doc(d) for d in cursor]
        except PyMongoError as e:
            logger.error("Query failed", collection=self.name, error=str(e))
            raise TransientIOError(f"Could not load {self.label} records") from e

    def get(self, entity_id):
        try:
            _id = self._object_id(entity_id)
        except (InvalidId, TypeError):
            raise NotFoundError(self.label, entity_id)
        try:
            doc = self._coll.find_one({"_id": _id})
        except PyMongoError as e:
            logger.error("Lookup failed", collection=self.name, entity_id=entity_id, error=str(e))
            raise TransientIOError(f"Could not load {self.label}") from e
        if not doc:
            raise NotFoundError(self.label, entity_id)
        return serialize_doc(doc)

    def create(self, fields):
        data = dict(fields)
        data.pop("id", None)
        data["created_date"] = _now()
        data["updated_date"] = data["created_date"]
        try:
            result = self._coll.insert_one(data)
        except PyMongoError as e:
            logger.error("Insert failed", collection=self.name, error=str(e))
            raise TransientIOError(f"Could not save {self.label}") from e
        data["_id"] = result.inserted_id
        return serialize_doc(data)

    def update(self, entity_id, fields):
        try:
            _id = self._object_id(entity_id)
        except (InvalidId, TypeError):
            raise NotFoundError(self.label, entity_id)
        update_dict = {k: v for k, v in fields.items() if k not in ("id", "_id", "created_date")}
        update_dict["updated_date"] = _now()
        try:
            res = self._coll.update_one({"_id": _id}, {"$set": update_dict})
            if res.matched_count == 0:
                raise NotFoundError(self.label, entity_id)
            doc = self._coll.find_one({"_id": _id})
        except PyMongoError as e:
            logger.error("Update failed", collection=self.name, entity_id=entity_id, error=str(e))
            raise TransientIOError(f"Could not update {self.label}") from e
        return serialize_doc(doc)


# ---------- In-memory ----------

def _matches(doc: Dict[str, Any], predicate: Dict[str, Any]) -> bool:
    for key, expected in predicate.items():
        value = doc.get(key)
        if isinstance(expected, dict) and "$in" in expected:
            if value not in expected["$in"]:
                return False
        elif value != expected:
            return False
    return True


class MemoryCollection(Collection):
    """Dict-backed collection for local runs and tests."""

    _seq = itertools.count()

    def __init__(self, name: str, label: str):
        super().__init__(name, label)
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._order: Dict[str, int] = {}

    def filter(self, predicate, order_by=None, limit=None):
        docs = [d for d in self._docs.values() if _matches(d, predicate)]
        docs.sort(key=lambda d: self._order[d["id"]])
        order = parse_order(order_by)
        if order:
            field, direction = order
            # Insertion order breaks ties, and flips together with the field
            def sort_key(d):
                value = d.get(field)
                return (value is not None, value if value is not None else 0, self._order[d["id"]])

            docs.sort(key=sort_key, reverse=direction == DESCENDING)
        if limit:
            docs = docs[:limit]
        return [serialize_doc(copy.deepcopy(d)) for d in docs]

    def get(self, entity_id):
        doc = self._docs.get(entity_id)
        if doc is None:
            raise NotFoundError(self.label, entity_id)
        return serialize_doc(copy.deepcopy(doc))

    def create(self, fields):
        data = copy.deepcopy(dict(fields))
        data["id"] = uuid.uuid4().hex
        data["created_date"] = _now()
        data["updated_date"] = data["created_date"]
        self._docs[data["id"]] = data
        self._order[data["id"]] = next(self._seq)
        return serialize_doc(copy.deepcopy(data))

    def update(self, entity_id, fields):
        doc = self._docs.get(entity_id)
        if doc is None:
            raise NotFoundError(self.label, entity_id)
        for k, v in fields.items():
            if k not in ("id", "created_date"):
                doc[k] = copy.deepcopy(v)
        doc["updated_date"] = _now()
        return serialize_doc(copy.deepcopy(doc))


# ---------- Store ----------

class EntityStore:
    """Named collections over one backend, addressed by schema class."""

    def __init__(self, factory, backend: str, db=None):
        self._factory = factory
        self._collections: Dict[str, Collection] = {}
        self.backend = backend
        self.db = db

    @classmethod
    def memory(cls) -> "EntityStore":
        return cls(MemoryCollection, backend="memory")

    @classmethod
    def mongo(cls, url: str, name: str) -> "EntityStore":
        client = MongoClient(url)
        db = client[name]
        return cls(lambda n, label: MongoCollection(db, n, label), backend="mongo", db=db)

    def collection(self, model_cls: Any) -> Collection:
        name = to_collection_name(model_cls)
        if name not in self._collections:
            self._collections[name] = self._factory(name, model_cls.__name__)
        return self._collections[name]

    def status(self) -> Dict[str, Any]:
        if self.db is None:
            return {"backend": self.backend, "connected": True, "collections": sorted(self._collections)}
        try:
            names = self.db.list_collection_names()
        except PyMongoError as e:
            return {"backend": self.backend, "connected": False, "error": str(e)[:80]}
        return {"backend": self.backend, "connected": True, "collections": names[:10]}


def create_store() -> EntityStore:
    if Config.DATABASE_URL:
        logger.info("Using MongoDB entity store", database_name=Config.DATABASE_NAME)
        return EntityStore.mongo(Config.DATABASE_URL, Config.DATABASE_NAME)
    logger.warning("DATABASE_URL not set, using in-memory entity store")
    return EntityStore.memory()
