"""
PrecedenceRepository - decisiones de admin sobre qué set de picks cuenta

IDs: user_id:season:week para una semana, user_id:season:all para toda la temporada
"""

from datetime import datetime, timezone
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from pickem.models.precedence import PickSetPreference


def preference_id_for(user_id: str, season: int, week: Optional[int] = None) -> str:
    return f"{user_id}:{season}:{'all' if week is None else week}"


class PrecedenceRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["pick_set_preferences"]

    async def upsert(
        self,
        user_id: str,
        season: int,
        week: Optional[int],
        pick_set_id: str,
        set_by: Optional[str] = None,
        reasoning: Optional[str] = None
    ) -> PickSetPreference:
        doc = await self.collection.find_one_and_update(
            {"_id": preference_id_for(user_id, season, week)},
            {
                "$set": {
                    "user_id": user_id,
                    "season": season,
                    "week": week,
                    "pick_set_id": pick_set_id,
                    "set_by": set_by,
                    "reasoning": reasoning,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return PickSetPreference(**doc)

    async def get(
        self,
        user_id: str,
        season: int,
        week: Optional[int] = None
    ) -> Optional[PickSetPreference]:
        doc = await self.collection.find_one({"_id": preference_id_for(user_id, season, week)})
        return PickSetPreference(**doc) if doc else None

    async def get_effective(
        self,
        user_id: str,
        season: int,
        week: int
    ) -> Optional[PickSetPreference]:
        """Preferencia de la semana; si no hay, la de toda la temporada"""
        preference = await self.get(user_id, season, week)
        if preference is None:
            preference = await self.get(user_id, season, None)
        return preference

    async def get_for_season(self, season: int) -> list[PickSetPreference]:
        cursor = self.collection.find({"season": season}).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [PickSetPreference(**doc) for doc in docs]

    async def delete(
        self,
        user_id: str,
        season: int,
        week: Optional[int] = None
    ) -> bool:
        result = await self.collection.delete_one(
            {"_id": preference_id_for(user_id, season, week)}
        )
        return result.deleted_count > 0
