# move_inventory/infra/repo/mongo_repo.py
from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from move_inventory.domain.models import Product, utcnow
from move_inventory.domain.ports import RecordStorePort

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
DB_NAME   = os.getenv("MONGO_DB", "move_inventory")
COLL_NAME = os.getenv("MONGO_COLL", "products")


def _to_product(doc: Optional[Dict[str, Any]]) -> Optional[Product]:
    if not doc:
        return None
    doc = {k: v for k, v in doc.items() if k != "_id"}
    return Product.model_validate(doc)


class MongoProductRepo(RecordStorePort):
    """
    Async repository for the `products` collection.

    Products are addressed by an integer `id` allocated from the `counters`
    collection; `barcode` carries a unique index.
    """

    def __init__(self, client: Optional[AsyncIOMotorClient] = None) -> None:
        self.client = client or AsyncIOMotorClient(MONGO_URI)
        self.db = self.client[DB_NAME]
        self.coll: AsyncIOMotorCollection = self.db[COLL_NAME]
        self.counters: AsyncIOMotorCollection = self.db["counters"]

    # ──────────────────────────────────────────────────────────────
    #  Indexing
    # ──────────────────────────────────────────────────────────────
    async def ensure_indexes(self) -> None:
        await self.coll.create_index([("id", ASCENDING)], unique=True)
        await self.coll.create_index([("barcode", ASCENDING)], unique=True)
        await self.coll.create_index([("updated_at", DESCENDING)])

    async def _next_id(self) -> int:
        doc = await self.counters.find_one_and_update(
            {"_id": COLL_NAME},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["seq"])

    # ──────────────────────────────────────────────────────────────
    #  Lookups
    # ──────────────────────────────────────────────────────────────
    async def find_by_barcode(self, barcode: str) -> Optional[Product]:
        if not barcode:
            return None
        return _to_product(await self.coll.find_one({"barcode": barcode}))

    async def find_by_id(self, product_id: int) -> Optional[Product]:
        return _to_product(await self.coll.find_one({"id": int(product_id)}))

    async def search_by_text(self, query: str, limit: int = 8) -> List[Product]:
        """Case-insensitive substring match on name, barcode and description, newest first."""
        q = (query or "").strip()
        if not q:
            return []
        rx = re.compile(re.escape(q), re.IGNORECASE)
        cursor = (
            self.coll.find({
                "$or": [
                    {"name": {"$regex": rx}},
                    {"barcode": {"$regex": rx}},
                    {"description": {"$regex": rx}},
                ]
            })
            .sort("updated_at", DESCENDING)
            .limit(limit)
        )
        return [_to_product(doc) async for doc in cursor]

    async def list_unanalyzed(self, limit: int = 100) -> List[Product]:
        cursor = self.coll.find({"moving_decision": None}).sort("id", ASCENDING).limit(limit)
        return [_to_product(doc) async for doc in cursor]

    # ──────────────────────────────────────────────────────────────
    #  Writes
    # ──────────────────────────────────────────────────────────────
    async def insert(self, product: Product) -> int:
        new_id = await self._next_id()
        doc = product.model_dump()
        doc["id"] = new_id
        await self.coll.insert_one(doc)
        return new_id

    async def update(self, product: Product) -> int:
        if product.id is None:
            return 0
        doc = product.model_dump(exclude={"id", "created_at"})
        doc["updated_at"] = utcnow()
        res = await self.coll.update_one({"id": product.id}, {"$set": doc})
        return res.matched_count

    async def ping(self) -> bool:
        await self.db.command("ping")
        return True
