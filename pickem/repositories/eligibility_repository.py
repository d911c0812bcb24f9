"""
EligibilityRepository - señal de pago verificado por usuario y temporada
"""

from datetime import datetime, timezone
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from pickem.models.eligibility import UserEligibility


def eligibility_id_for(user_id: str, season: int) -> str:
    return f"{user_id}:{season}"


class EligibilityRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["user_eligibility"]

    async def set(self, user_id: str, season: int, eligible: bool) -> UserEligibility:
        doc = await self.collection.find_one_and_update(
            {"_id": eligibility_id_for(user_id, season)},
            {
                "$set": {
                    "user_id": user_id,
                    "season": season,
                    "eligible": eligible,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return UserEligibility(**doc)

    async def get(self, user_id: str, season: int) -> Optional[UserEligibility]:
        doc = await self.collection.find_one({"_id": eligibility_id_for(user_id, season)})
        return UserEligibility(**doc) if doc else None

    async def is_eligible(self, user_id: str, season: int, default: bool) -> bool:
        """Sin registro se usa el default configurado"""
        record = await self.get(user_id, season)
        return record.eligible if record else default
