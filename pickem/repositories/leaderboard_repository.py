"""
📊 LeaderboardRepository - tablas semanales y de temporada

Las entradas son 100% derivadas. Cada escritura es un único upsert por
(usuario, scope): nunca insert + update por separado, nunca sumas incrementales.
"""

import logging
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from pickem.models.leaderboard import LeaderboardEntry, ScopeType

logger = logging.getLogger(__name__)


class LeaderboardRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["leaderboard"]

    # ============================================
    # 📌 UPSERT
    # ============================================

    async def upsert(self, entry: LeaderboardEntry) -> None:
        """
        Inserta o sobreescribe la entrada con sus totales.

        El rank no se toca aquí: lo asigna recompute_ranks para todo el scope.
        Dos upserts simultáneos sobre la misma clave pueden chocar con
        DuplicateKeyError; el segundo intento ya encuentra el documento y actualiza.
        """
        fields = entry.totals()
        entry_id = fields.pop("_id")

        update = {
            "$set": fields,
            "$setOnInsert": {"rank": None},
        }

        try:
            await self.collection.update_one({"_id": entry_id}, update, upsert=True)
        except DuplicateKeyError:
            logger.warning(f"Concurrent upsert on {entry_id}, retrying as update")
            await self.collection.update_one({"_id": entry_id}, update, upsert=True)

    async def set_rank(self, entry_id: str, rank: Optional[int]) -> None:
        await self.collection.update_one({"_id": entry_id}, {"$set": {"rank": rank}})

    # ============================================
    # 📌 READ
    # ============================================

    async def get_by_id(self, entry_id: str) -> Optional[LeaderboardEntry]:
        doc = await self.collection.find_one({"_id": entry_id})
        return LeaderboardEntry(**doc) if doc else None

    async def get_for_scope(
        self,
        season: int,
        week: Optional[int] = None
    ) -> list[LeaderboardEntry]:
        """Todas las entradas del scope (semana o temporada)"""
        query = {"season": season}
        if week is None:
            query["scope_type"] = ScopeType.SEASON.value
        else:
            query["scope_type"] = ScopeType.WEEK.value
            query["week"] = week

        cursor = self.collection.find(query).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [LeaderboardEntry(**doc) for doc in docs]

    async def get_all_for_season(self, season: int) -> list[LeaderboardEntry]:
        """Entradas semanales y de temporada juntas (para rebuild/auditoría)"""
        cursor = self.collection.find({"season": season}).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [LeaderboardEntry(**doc) for doc in docs]

    async def get_weeks_in_range(
        self,
        season: int,
        first_week: int,
        last_week: int
    ) -> list[LeaderboardEntry]:
        """Entradas semanales entre first_week y last_week (ambas incluidas)"""
        cursor = self.collection.find({
            "season": season,
            "scope_type": ScopeType.WEEK.value,
            "week": {"$gte": first_week, "$lte": last_week},
        }).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [LeaderboardEntry(**doc) for doc in docs]

    async def get_ranked(
        self,
        season: int,
        week: Optional[int] = None,
        limit: int = 100,
        include_ineligible: bool = False
    ) -> list[LeaderboardEntry]:
        """
        🏆 Tabla ordenada para mostrar

        Los no elegibles (sin rank) van al final si se piden.
        """
        entries = await self.get_for_scope(season, week)
        if not include_ineligible:
            entries = [e for e in entries if e.rank is not None]

        entries.sort(key=lambda e: (e.rank is None, e.rank or 0, e.user_id))
        return entries[:limit]

    async def get_for_user(self, user_id: str, season: int) -> list[LeaderboardEntry]:
        cursor = self.collection.find(
            {"user_id": user_id, "season": season}
        ).sort("_id", 1)
        docs = await cursor.to_list(length=None)
        return [LeaderboardEntry(**doc) for doc in docs]

    async def get_users_for_scope(self, season: int, week: Optional[int] = None) -> list[str]:
        return sorted({entry.user_id for entry in await self.get_for_scope(season, week)})

    # ============================================
    # 📌 DELETE
    # ============================================

    async def delete(self, entry_id: str) -> bool:
        result = await self.collection.delete_one({"_id": entry_id})
        return result.deleted_count > 0
