# tests/conftest.py
import copy
import json
import logging
import os
import uuid
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite
import asyncpg
import pytest
import pytest_asyncio

from async_search_query.base.interfaces import FilterAdapter
from async_search_query.base.settings import SearchSettings
from async_search_query.memory.base import MemoryFilterAdapter
from async_search_query.postgresql.base import PostgresFilterAdapter
from async_search_query.sqlite.base import SqliteFilterAdapter

# Silence verbose loggers
logging.getLogger("asyncio").setLevel(logging.WARNING)

# --- Constants ---
POSTGRES_DSN = os.getenv("TEST_POSTGRES_DSN")

# --- List of available adapter keys ---
AVAILABLE_ADAPTERS = ["memory", "sqlite"]
if POSTGRES_DSN:
    AVAILABLE_ADAPTERS.append("postgresql")


# --- Sample Listings ---
LISTINGS: List[Dict[str, Any]] = [
    {
        "id": 1,
        "title": "BMW 320d",
        "make": "BMW",
        "model": "3 Series",
        "year": 2018,
        "price": 21000,
        "location": "Berlin",
        "description": "Well kept diesel saloon",
        "status": "active",
        "tags": ["diesel", "saloon"],
        "view_count": 120,
        "search_boost": 2,
        "created_at": "2024-01-05T10:00:00",
        "mileage": 60000,
    },
    {
        "id": 2,
        "title": "BMW M3",
        "make": "BMW",
        "model": "M3",
        "year": 2016,
        "price": 35000,
        "location": "Munich",
        "description": "Track ready sports car",
        "status": "active",
        "tags": ["petrol", "sports"],
        "view_count": 300,
        "search_boost": 5,
        "created_at": "2024-02-10T10:00:00",
        "mileage": 80000,
    },
    {
        "id": 3,
        "title": "Audi A4 Avant",
        "make": "Audi",
        "model": "A4",
        "year": 2019,
        "price": 24000,
        "location": "Hamburg",
        "description": "Family estate with low mileage",
        "status": "active",
        "tags": ["diesel", "estate"],
        "view_count": 90,
        "search_boost": 1,
        "created_at": "2024-03-01T10:00:00",
        "mileage": 30000,
    },
    {
        "id": 4,
        "title": "Audi RS6",
        "make": "Audi",
        "model": "RS6",
        "year": 2020,
        "price": 85000,
        "location": "Berlin",
        "description": "Fast estate",
        "status": "sold",
        "tags": ["petrol", "estate"],
        "view_count": 500,
        "search_boost": 3,
        "created_at": "2024-01-20T10:00:00",
        "mileage": None,
    },
    {
        "id": 5,
        "title": "Volkswagen Golf",
        "make": "VW",
        "model": "Golf",
        "year": 2014,
        "price": 9000,
        "location": "Cologne",
        "description": "Reliable hatchback",
        "status": "active",
        "tags": ["petrol", "hatchback"],
        "view_count": 40,
        "search_boost": 0,
        "created_at": "2023-12-15T10:00:00",
        "mileage": 120000,
    },
    {
        "id": 6,
        "title": "Toyota Prius",
        "make": "Toyota",
        "model": "Prius",
        "year": 2017,
        "price": 15000,
        "location": "berlin",
        "description": "Economical hybrid hatchback",
        "status": "active",
        "tags": ["hybrid", "hatchback"],
        "view_count": 60,
        "search_boost": 0,
        "created_at": "2024-02-28T10:00:00",
        "mileage": 90000,
    },
]

LISTING_FIELDS = list(LISTINGS[0].keys())

SQLITE_LISTINGS_DDL = """
CREATE TABLE IF NOT EXISTS "{table}" (
    id INTEGER PRIMARY KEY,
    title TEXT,
    make TEXT,
    model TEXT,
    year INTEGER,
    price INTEGER,
    location TEXT,
    description TEXT,
    status TEXT,
    tags TEXT,
    view_count INTEGER,
    search_boost INTEGER,
    created_at TEXT,
    mileage INTEGER
)
"""

SQLITE_MODIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS "modifications" (
    id INTEGER PRIMARY KEY,
    listing_id INTEGER,
    name TEXT,
    category TEXT
)
"""

POSTGRES_MODIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS "{table}" (
    id INTEGER PRIMARY KEY,
    listing_id INTEGER,
    name TEXT,
    category TEXT
)
"""

POSTGRES_LISTINGS_DDL = """
CREATE TABLE IF NOT EXISTS "{table}" (
    id INTEGER PRIMARY KEY,
    title TEXT,
    make TEXT,
    model TEXT,
    year INTEGER,
    price INTEGER,
    location TEXT,
    description TEXT,
    status TEXT,
    tags TEXT[],
    view_count INTEGER,
    search_boost INTEGER,
    created_at TEXT,
    mileage INTEGER,
    search_vector TSVECTOR GENERATED ALWAYS AS (
        to_tsvector('english', coalesce(title, '') || ' ' || coalesce(description, ''))
    ) STORED
)
"""


def _modification_values(modification: Dict[str, Any]) -> List[Any]:
    return [modification[c] for c in ("id", "listing_id", "name", "category")]


def _insert_sql(table: str, placeholder) -> str:
    columns = ", ".join(f'"{c}"' for c in LISTING_FIELDS)
    values = ", ".join(placeholder(i) for i in range(1, len(LISTING_FIELDS) + 1))
    return f'INSERT INTO "{table}" ({columns}) VALUES ({values})'


# --- Adapter Factories (Function Scoped) ---


@pytest.fixture(scope="function")
def memory_adapter_factory():
    """Factory for in-memory adapters."""

    async def _create(
        rows: List[Dict[str, Any]],
        settings: Optional[SearchSettings] = None,
        modifications: Sequence[Dict[str, Any]] = (),
    ) -> FilterAdapter:
        return MemoryFilterAdapter(rows, settings)

    return _create


@pytest.fixture(scope="function")
def sqlite_adapter_factory(tmp_path):
    """Factory for SQLite adapters over a temporary database file."""
    db_path = str(tmp_path / "search.db")

    async def _create(
        rows: List[Dict[str, Any]],
        settings: Optional[SearchSettings] = None,
        modifications: Sequence[Dict[str, Any]] = (),
    ) -> FilterAdapter:
        settings = settings or SearchSettings()
        async with aiosqlite.connect(db_path) as conn:
            await conn.execute(SQLITE_LISTINGS_DDL.format(table=settings.table))
            await conn.execute(SQLITE_MODIFICATIONS_DDL)
            insert = _insert_sql(settings.table, lambda i: "?")
            for row in rows:
                await conn.execute(
                    insert,
                    [
                        json.dumps(row[c]) if isinstance(row[c], list) else row[c]
                        for c in LISTING_FIELDS
                    ],
                )
            for modification in modifications:
                await conn.execute(
                    'INSERT INTO "modifications" (id, listing_id, name, category) '
                    "VALUES (?, ?, ?, ?)",
                    _modification_values(modification),
                )
            await conn.commit()
        return SqliteFilterAdapter(db_path, settings)

    return _create


@pytest_asyncio.fixture(scope="function")
async def postgres_pool():
    """Connection pool to the database named by TEST_POSTGRES_DSN."""
    if not POSTGRES_DSN:
        pytest.skip("TEST_POSTGRES_DSN not set")
    pool = await asyncpg.create_pool(POSTGRES_DSN, min_size=1, max_size=4)
    try:
        yield pool
    finally:
        await pool.close()


@pytest_asyncio.fixture(scope="function")
async def postgresql_adapter_factory(postgres_pool):
    """Factory for PostgreSQL adapters; each gets its own temporary table."""
    created: List[str] = []

    async def _create(
        rows: List[Dict[str, Any]],
        settings: Optional[SearchSettings] = None,
        modifications: Sequence[Dict[str, Any]] = (),
    ) -> FilterAdapter:
        settings = settings or SearchSettings()
        table = f"{settings.table}_{uuid.uuid4().hex[:8]}"
        settings = settings.model_copy(update={"table": table})
        async with postgres_pool.acquire() as conn:
            await conn.execute(POSTGRES_LISTINGS_DDL.format(table=table))
            created.append(table)
            insert = _insert_sql(table, lambda i: f"${i}")
            for row in rows:
                await conn.execute(insert, *[row[c] for c in LISTING_FIELDS])
            mods_table = f"{table}_modifications"
            await conn.execute(POSTGRES_MODIFICATIONS_DDL.format(table=mods_table))
            created.append(mods_table)
            for modification in modifications:
                await conn.execute(
                    f'INSERT INTO "{mods_table}" (id, listing_id, name, category) '
                    "VALUES ($1, $2, $3, $4)",
                    *_modification_values(modification),
                )
        return PostgresFilterAdapter(postgres_pool, settings)

    yield _create

    async with postgres_pool.acquire() as conn:
        for table in created:
            await conn.execute(f'DROP TABLE IF EXISTS "{table}"')


# --- Parametrized Factory and Seeded Adapter ---


@pytest.fixture(params=AVAILABLE_ADAPTERS)
def adapter_factory(request):
    """Parametrized fixture to get the correct factory based on adapter key."""
    impl_key = request.param
    if impl_key == "memory":
        yield request.getfixturevalue("memory_adapter_factory")
    elif impl_key == "sqlite":
        yield request.getfixturevalue("sqlite_adapter_factory")
    elif impl_key == "postgresql":
        yield request.getfixturevalue("postgresql_adapter_factory")
    else:
        raise ValueError(f"Unknown adapter implementation key: {impl_key}")


@pytest_asyncio.fixture
async def seeded_adapter(adapter_factory):
    """An adapter over the sample listings with default settings."""
    return await adapter_factory(LISTINGS)


@pytest.fixture
def listings() -> List[Dict[str, Any]]:
    return copy.deepcopy(LISTINGS)


@pytest.fixture
def modifications_join():
    """Join arguments from an adapter's listings to the modifications seeded with it."""

    def _join(adapter: FilterAdapter) -> Dict[str, str]:
        table = "modifications"
        if adapter.name == "postgresql":
            table = f"{adapter.settings.table}_modifications"
        on = f'modifications.listing_id = "{adapter.settings.table}".id'
        return {"table": table, "alias": "modifications", "on": on}

    return _join


# --- Logger Fixture ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_search_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})
