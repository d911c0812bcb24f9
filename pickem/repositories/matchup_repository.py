"""
🏈 MatchupRepository - Partidos del slate semanal

El feed, las correcciones manuales y los scripts de recuperación escriben
aquí en paralelo. Cada cambio de marcador/estado/spread incrementa
``revision``; el grade solo se guarda si la revision sigue siendo la misma
con la que se calculó (compare-and-set).
"""

from datetime import datetime, timezone
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from pickem.models.matchup import Matchup, MatchupGrade, MatchupStatus


class MatchupRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["matchups"]

    # ============================================
    # 📌 CREATE / UPDATE (fuente)
    # ============================================

    async def upsert_slate_entry(
        self,
        matchup_id: str,
        season: int,
        week: int,
        home_team: str,
        away_team: str,
        spread: float,
        kickoff_time: Optional[datetime] = None
    ) -> Matchup:
        """
        Publica o corrige un partido del slate.

        Si el spread cambia se incrementa la revision para forzar el regrade.
        Sin kickoff_time se conserva el que ya estaba guardado.
        """
        now = datetime.now(timezone.utc)
        existing = await self.get_by_id(matchup_id)

        fields = {
            "season": season,
            "week": week,
            "home_team": home_team,
            "away_team": away_team,
            "spread": spread,
            "updated_at": now,
        }
        if kickoff_time is not None:
            fields["kickoff_time"] = kickoff_time

        update = {"$set": fields}
        if existing is None:
            update["$setOnInsert"] = {
                "home_score": None,
                "away_score": None,
                "status": MatchupStatus.SCHEDULED.value,
                "grade": None,
                "revision": 0,
                "created_at": now,
            }
            if kickoff_time is None:
                update["$setOnInsert"]["kickoff_time"] = None
        elif existing.spread != spread:
            update["$inc"] = {"revision": 1}

        doc = await self.collection.find_one_and_update(
            {"_id": matchup_id},
            update,
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return Matchup(**doc)

    async def apply_state_report(
        self,
        matchup_id: str,
        home_score: Optional[int],
        away_score: Optional[int],
        status: str
    ) -> Optional[Matchup]:
        """Guarda marcador/estado reportados y devuelve el documento resultante"""
        doc = await self.collection.find_one_and_update(
            {"_id": matchup_id},
            {
                "$set": {
                    "home_score": home_score,
                    "away_score": away_score,
                    "status": status,
                    "updated_at": datetime.now(timezone.utc),
                },
                "$inc": {"revision": 1},
            },
            return_document=ReturnDocument.AFTER
        )
        return Matchup(**doc) if doc else None

    # ============================================
    # 📌 UPDATE (derivado)
    # ============================================

    async def store_grade(
        self,
        matchup_id: str,
        revision: int,
        grade: Optional[MatchupGrade]
    ) -> bool:
        """
        Guarda el grade calculado para ``revision``.

        Retorna False si otro writer cambió el partido mientras tanto; en ese
        caso hay que volver a leer y recalcular.
        """
        result = await self.collection.update_one(
            {"_id": matchup_id, "revision": revision},
            {"$set": {"grade": grade.model_dump() if grade else None}}
        )
        return result.matched_count > 0

    # ============================================
    # 📌 READ
    # ============================================

    async def get_by_id(self, matchup_id: str) -> Optional[Matchup]:
        doc = await self.collection.find_one({"_id": matchup_id})
        return Matchup(**doc) if doc else None

    async def get_many(self, matchup_ids: list[str]) -> dict[str, Matchup]:
        """Partidos por ID, indexados para lookups del grader/auditor"""
        if not matchup_ids:
            return {}
        cursor = self.collection.find({"_id": {"$in": list(set(matchup_ids))}})
        docs = await cursor.to_list(length=None)
        return {doc["_id"]: Matchup(**doc) for doc in docs}

    async def get_for_scope(
        self,
        season: int,
        week: Optional[int] = None
    ) -> list[Matchup]:
        """Partidos de una semana (o de toda la temporada si week es None)"""
        query = {"season": season}
        if week is not None:
            query["week"] = week

        cursor = self.collection.find(query).sort([("week", 1), ("_id", 1)])
        docs = await cursor.to_list(length=None)
        return [Matchup(**doc) for doc in docs]
