"""
🔌 Database Connection Setup - MongoDB

Configuración centralizada para conectar a MongoDB
"""

import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Optional

from pickem.core.config import get_settings

logger = logging.getLogger(__name__)


class Database:
    """Singleton para la conexión a MongoDB"""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def connect(cls):
        """Conecta a MongoDB usando la configuración"""
        if cls.client is None:
            settings = get_settings()

            cls.client = AsyncIOMotorClient(
                settings.mongodb_uri,
                maxPoolSize=10,
                minPoolSize=2,
            )
            cls.db = cls.client[settings.mongodb_db_name]

            # Test de conexión
            await cls.client.admin.command("ping")
            logger.info(f"✅ Connected to MongoDB: {settings.mongodb_db_name}")

    @classmethod
    async def disconnect(cls):
        """Cierra la conexión"""
        if cls.client is not None:
            cls.client.close()
            cls.client = None
            cls.db = None
            logger.info("❌ Disconnected from MongoDB")

    @classmethod
    def get_db(cls) -> AsyncIOMotorDatabase:
        """Retorna la instancia de la base de datos"""
        if cls.db is None:
            raise RuntimeError("Database not connected. Call Database.connect() first.")
        return cls.db


# ============================================
# 🎯 DEPENDENCY para FastAPI
# ============================================

async def get_database() -> AsyncIOMotorDatabase:
    """
    FastAPI dependency para inyectar la DB

    Uso:
        @router.get("/matchups/{matchup_id}")
        async def get_matchup(matchup_id: str, db: Database):
            repo = MatchupRepository(db)
            return await repo.get_by_id(matchup_id)
    """
    return Database.get_db()


# ============================================
# 🏗️ CREAR ÍNDICES
# ============================================

async def create_indexes(db: Optional[AsyncIOMotorDatabase] = None):
    """
    Crea los índices necesarios para las queries y las claves únicas

    Los _id ya son claves compuestas deterministas; los índices únicos
    adicionales protegen contra documentos duplicados escritos a mano.
    """
    db = db if db is not None else Database.get_db()

    # Índices para matchups
    await db.matchups.create_index([("season", 1), ("week", 1)])
    await db.matchups.create_index("status")

    # Índices para picks
    await db.picks.create_index([("user_id", 1), ("matchup_id", 1)], unique=True)
    await db.picks.create_index("matchup_id")
    await db.picks.create_index([("user_id", 1), ("season", 1), ("week", 1)])

    # Índices para anonymous_picks
    await db.anonymous_picks.create_index([("email", 1), ("matchup_id", 1)], unique=True)
    await db.anonymous_picks.create_index("matchup_id")
    await db.anonymous_picks.create_index([("email", 1), ("season", 1), ("week", 1)])
    await db.anonymous_picks.create_index([("assigned_user_id", 1), ("season", 1), ("week", 1)])

    # Índices para pick_set_preferences
    await db.pick_set_preferences.create_index(
        [("user_id", 1), ("season", 1), ("week", 1)], unique=True
    )

    # Índices para leaderboard
    await db.leaderboard.create_index(
        [("user_id", 1), ("scope_type", 1), ("season", 1), ("week", 1)], unique=True
    )
    await db.leaderboard.create_index([("season", 1), ("scope_type", 1), ("week", 1)])

    # Índices para user_eligibility
    await db.user_eligibility.create_index([("user_id", 1), ("season", 1)], unique=True)

    logger.info("✅ Indexes created successfully")
