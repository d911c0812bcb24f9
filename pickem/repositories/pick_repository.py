"""
🎯 PickRepository - CRUD para picks de usuarios autenticados

IDs compuestos: user_id:matchup_id
"""

from datetime import datetime, timezone
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from pickem.models.pick import Pick, PickGrade


def pick_id_for(user_id: str, matchup_id: str) -> str:
    return f"{user_id}:{matchup_id}"


def derived_fields(grade: PickGrade, revision: Optional[int]) -> dict:
    return {
        "outcome": grade.outcome,
        "base_points": grade.base_points,
        "bonus_points": grade.bonus_points,
        "points": grade.points,
        "graded_revision": revision,
    }


async def write_pick_grade(
    collection: AsyncIOMotorCollection,
    pick_id: str,
    revision: int,
    grade: PickGrade
) -> bool:
    """
    Escribe el grade de un pick calculado desde la revision ``revision`` del partido.

    Nunca pisa un grade calculado desde una revision más nueva: si dos
    recalculos se cruzan, el de la revision más reciente queda.
    """
    result = await collection.update_one(
        {
            "_id": pick_id,
            "$or": [
                {"graded_revision": None},
                {"graded_revision": {"$lte": revision}},
            ],
        },
        {"$set": derived_fields(grade, revision)}
    )
    return result.matched_count > 0


class PickRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["picks"]

    # ============================================
    # 📌 CREATE / REPLACE
    # ============================================

    async def upsert(
        self,
        user_id: str,
        matchup_id: str,
        season: int,
        week: int,
        selected_side: str,
        is_lock: bool
    ) -> Pick:
        """
        Crea el pick o reemplaza la elección existente para ese partido.

        Los campos derivados (outcome/points) no se tocan aquí; solo el grader los escribe.
        """
        now = datetime.now(timezone.utc)

        doc = await self.collection.find_one_and_update(
            {"_id": pick_id_for(user_id, matchup_id)},
            {
                "$set": {
                    "user_id": user_id,
                    "matchup_id": matchup_id,
                    "season": season,
                    "week": week,
                    "selected_side": selected_side,
                    "is_lock": is_lock,
                    "updated_at": now,
                },
                "$setOnInsert": {
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
        return Pick(**doc)

    # ============================================
    # 📌 READ
    # ============================================

    async def get_by_id(self, pick_id: str) -> Optional[Pick]:
        doc = await self.collection.find_one({"_id": pick_id})
        return Pick(**doc) if doc else None

    async def get_for_matchup(self, matchup_id: str) -> list[Pick]:
        """🔥 Todos los picks de un partido (para regrade)"""
        cursor = self.collection.find({"matchup_id": matchup_id}).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [Pick(**doc) for doc in docs]

    async def get_for_user_period(
        self,
        user_id: str,
        season: int,
        week: int
    ) -> list[Pick]:
        cursor = self.collection.find({
            "user_id": user_id,
            "season": season,
            "week": week
        }).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [Pick(**doc) for doc in docs]

    async def get_for_scope(
        self,
        season: int,
        week: Optional[int] = None
    ) -> list[Pick]:
        query = {"season": season}
        if week is not None:
            query["week"] = week

        cursor = self.collection.find(query).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [Pick(**doc) for doc in docs]

    async def get_weeks_for_user(self, user_id: str, season: int) -> list[int]:
        weeks = await self.collection.distinct(
            "week", {"user_id": user_id, "season": season}
        )
        return sorted(weeks)

    # ============================================
    # 📌 UPDATE
    # ============================================

    async def set_visibility(self, pick_id: str, visible: bool) -> Optional[Pick]:
        doc = await self.collection.find_one_and_update(
            {"_id": pick_id},
            {"$set": {"visible": visible, "updated_at": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER
        )
        return Pick(**doc) if doc else None

    async def store_grade(self, pick_id: str, revision: int, grade: PickGrade) -> bool:
        return await write_pick_grade(self.collection, pick_id, revision, grade)

    # ============================================
    # 📌 DELETE
    # ============================================

    async def delete(self, pick_id: str) -> bool:
        """Elimina un pick (solo antes del lockeo)"""
        result = await self.collection.delete_one({"_id": pick_id})
        return result.deleted_count > 0
