"""
Pytest fixtures and configuration for all tests.

By default tests run against an in-memory mongomock database. Set
TEST_MONGODB_URI to run the same suite against a real MongoDB.
"""

import os
import pytest
from typing import AsyncGenerator
from datetime import datetime, timedelta, timezone
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from mongomock_motor import AsyncMongoMockClient

from pickem.core.config import Settings
from pickem.models.matchup import MatchupUpsert
from pickem.models.pick import AnonymousPickCreate, PickCreate
from pickem.services.pick_service import PickService
from pickem.services.scoring_pipeline import ScoringPipeline

TEST_DB_URI = os.getenv("TEST_MONGODB_URI")
TEST_DB_NAME = "spread_pickem_test"

SEASON = 2025


@pytest.fixture(scope="session")
def worker_id(request):
    """
    Return the worker ID when using pytest-xdist, otherwise 'master'.
    This allows each worker to use its own test database.
    """
    if hasattr(request.config, 'workerinput'):
        return request.config.workerinput['workerid']
    return 'master'


@pytest.fixture(scope="function")
async def test_db(worker_id) -> AsyncGenerator[AsyncIOMotorDatabase, None]:
    """
    Provide a clean test database for each test.

    Uses a separate database per worker when running with pytest-xdist.
    Automatically cleans up after each test.
    """
    client = AsyncIOMotorClient(TEST_DB_URI) if TEST_DB_URI else AsyncMongoMockClient()
    db_name = f"{TEST_DB_NAME}_{worker_id}" if worker_id != "master" else TEST_DB_NAME
    db = client[db_name]

    yield db

    # Cleanup: drop all collections after test
    collection_names = await db.list_collection_names()
    for collection_name in collection_names:
        await db[collection_name].drop()

    client.close()


@pytest.fixture
def settings() -> Settings:
    """Settings with small chunks so chunking is exercised by small fixtures."""
    return Settings(
        mongodb_db_name=TEST_DB_NAME,
        admin_api_key=None,
        max_picks_per_week=6,
        default_user_eligible=True,
        recompute_chunk_size=2,
        recompute_max_retries=2,
    )


@pytest.fixture
def pipeline(test_db, settings) -> ScoringPipeline:
    return ScoringPipeline(test_db, settings)


@pytest.fixture
def pick_service(test_db, settings) -> PickService:
    return PickService(test_db, settings)


@pytest.fixture
def kickoff() -> datetime:
    """A kickoff far enough ahead that the matchup is open for picks."""
    return datetime.now(timezone.utc) + timedelta(days=3)


@pytest.fixture
def publish_matchup(pipeline, kickoff):
    """Publish a slate entry: await publish_matchup("m1", week=5, spread=-7.0)"""
    async def _publish(
        matchup_id: str,
        week: int = 5,
        spread: float = -7.0,
        home_team: str = "HOME",
        away_team: str = "AWAY",
        season: int = SEASON
    ):
        matchup, _ = await pipeline.upsert_matchup(
            matchup_id,
            MatchupUpsert(
                season=season,
                week=week,
                home_team=home_team,
                away_team=away_team,
                spread=spread,
                kickoff_time=kickoff,
            ),
        )
        return matchup

    return _publish


@pytest.fixture
def submit_pick(pick_service):
    """Submit an authenticated pick and return it."""
    async def _submit(user_id: str, matchup_id: str, side: str, is_lock: bool = False):
        pick, _ = await pick_service.submit_pick(
            PickCreate(user_id=user_id, matchup_id=matchup_id, selected_side=side, is_lock=is_lock)
        )
        return pick

    return _submit


@pytest.fixture
def submit_anonymous_pick(pick_service):
    """Submit an anonymous pick and return it."""
    async def _submit(email: str, matchup_id: str, side: str, is_lock: bool = False):
        pick, _ = await pick_service.submit_anonymous_pick(
            AnonymousPickCreate(email=email, matchup_id=matchup_id, selected_side=side, is_lock=is_lock)
        )
        return pick

    return _submit


@pytest.fixture
def final_score(pipeline):
    """Report a final score for a matchup."""
    async def _final(matchup_id: str, home_score: int, away_score: int):
        return await pipeline.report_matchup_state(matchup_id, home_score, away_score, "completed")

    return _final
