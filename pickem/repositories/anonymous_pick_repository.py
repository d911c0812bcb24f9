"""
AnonymousPickRepository - picks enviados sin cuenta.

IDs compuestos: anon:email:matchup_id. Un pick anónimo no cuenta para
ningún leaderboard hasta que tenga assigned_user_id.
"""

from datetime import datetime, timezone
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from pickem.models.pick import AnonymousPick, PickGrade, ValidationState
from pickem.repositories.pick_repository import write_pick_grade


def anonymous_pick_id_for(email: str, matchup_id: str) -> str:
    return f"anon:{email}:{matchup_id}"


class AnonymousPickRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["anonymous_picks"]

    # ============================================
    # 📌 CREATE / REPLACE
    # ============================================

    async def upsert(
        self,
        email: str,
        name: Optional[str],
        matchup_id: str,
        season: int,
        week: int,
        selected_side: str,
        is_lock: bool
    ) -> AnonymousPick:
        now = datetime.now(timezone.utc)

        doc = await self.collection.find_one_and_update(
            {"_id": anonymous_pick_id_for(email, matchup_id)},
            {
                "$set": {
                    "email": email,
                    "name": name,
                    "matchup_id": matchup_id,
                    "season": season,
                    "week": week,
                    "selected_side": selected_side,
                    "is_lock": is_lock,
                    "updated_at": now,
                },
                "$setOnInsert": {
                    "assigned_user_id": None,
                    "validation_state": ValidationState.UNVALIDATED.value,
                    "visible": True,
                    "outcome": None,
                    "base_points": None,
                    "bonus_points": None,
                    "points": None,
                    "graded_revision": None,
                    "created_at": now,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return AnonymousPick(**doc)

    # ============================================
    # 📌 READ
    # ============================================

    async def get_by_id(self, pick_id: str) -> Optional[AnonymousPick]:
        doc = await self.collection.find_one({"_id": pick_id})
        return AnonymousPick(**doc) if doc else None

    async def get_for_matchup(self, matchup_id: str) -> list[AnonymousPick]:
        cursor = self.collection.find({"matchup_id": matchup_id}).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [AnonymousPick(**doc) for doc in docs]

    async def get_for_email_period(
        self,
        email: str,
        season: int,
        week: int
    ) -> list[AnonymousPick]:
        cursor = self.collection.find({
            "email": email,
            "season": season,
            "week": week
        }).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [AnonymousPick(**doc) for doc in docs]

    async def get_claimed_for_user_period(
        self,
        user_id: str,
        season: int,
        week: int
    ) -> list[AnonymousPick]:
        cursor = self.collection.find({
            "assigned_user_id": user_id,
            "season": season,
            "week": week
        }).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [AnonymousPick(**doc) for doc in docs]

    async def get_for_scope(
        self,
        season: int,
        week: Optional[int] = None,
        claimed: Optional[bool] = None
    ) -> list[AnonymousPick]:
        """
        Picks anónimos de una semana o temporada.

        claimed=True solo asignados, claimed=False solo pendientes de asignar.
        """
        query = {"season": season}
        if week is not None:
            query["week"] = week
        if claimed is True:
            query["assigned_user_id"] = {"$ne": None}
        elif claimed is False:
            query["assigned_user_id"] = None

        cursor = self.collection.find(query).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [AnonymousPick(**doc) for doc in docs]

    async def get_weeks_for_user(self, user_id: str, season: int) -> list[int]:
        weeks = await self.collection.distinct(
            "week", {"assigned_user_id": user_id, "season": season}
        )
        return sorted(weeks)

    # ============================================
    # 📌 UPDATE
    # ============================================

    async def assign(
        self,
        pick_id: str,
        user_id: str,
        validation_state: str
    ) -> Optional[AnonymousPick]:
        """Asigna (claim) un pick anónimo a un usuario"""
        doc = await self.collection.find_one_and_update(
            {"_id": pick_id},
            {
                "$set": {
                    "assigned_user_id": user_id,
                    "validation_state": validation_state,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            return_document=ReturnDocument.AFTER
        )
        return AnonymousPick(**doc) if doc else None

    async def set_visibility(self, pick_id: str, visible: bool) -> Optional[AnonymousPick]:
        doc = await self.collection.find_one_and_update(
            {"_id": pick_id},
            {"$set": {"visible": visible, "updated_at": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER
        )
        return AnonymousPick(**doc) if doc else None

    async def store_grade(self, pick_id: str, revision: int, grade: PickGrade) -> bool:
        return await write_pick_grade(self.collection, pick_id, revision, grade)

    # ============================================
    # 📌 DELETE
    # ============================================

    async def delete(self, pick_id: str) -> bool:
        result = await self.collection.delete_one({"_id": pick_id})
        return result.deleted_count > 0
