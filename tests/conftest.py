"""
Shared fixtures: relationship catalog, schema, in-memory Redis and clocks
"""

import fnmatch
from datetime import date, datetime, timedelta

import pytest

from query_synthesis.models import (
    BusinessContextProfile,
    ForeignKeyRelationship,
    Granularity,
    IntentType,
    SchemaContext,
    TableColumn,
    TableMetadata,
    TimeRange,
)
from query_synthesis.services.relationship_catalog import GraphRelationshipCatalog


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` with ``decode_responses=True``"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.strings = {}
        self.sets = {}
        self.hashes = {}
        self.lists = {}
        self.expirations = {}
        self.published = []

    def _check(self):
        if self.fail:
            raise ConnectionError("redis unavailable")

    def _all_keys(self):
        return set(self.strings) | set(self.sets) | set(self.hashes) | set(self.lists)

    async def get(self, key):
        self._check()
        return self.strings.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.strings[key] = value
        if ex is not None:
            self.expirations[key] = ex
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            for store in (self.strings, self.sets, self.hashes, self.lists):
                if key in store:
                    del store[key]
                    removed += 1
        return removed

    async def sadd(self, key, *members):
        self._check()
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    async def smembers(self, key):
        self._check()
        return set(self.sets.get(key, set()))

    async def expire(self, key, seconds):
        self._check()
        self.expirations[key] = seconds
        return True

    async def scan_iter(self, match=None):
        self._check()
        for key in sorted(self._all_keys()):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def hset(self, name, key, value):
        self._check()
        self.hashes.setdefault(name, {})[key] = value
        return 1

    async def hgetall(self, name):
        self._check()
        return dict(self.hashes.get(name, {}))

    async def hdel(self, name, *keys):
        self._check()
        bucket = self.hashes.get(name, {})
        return sum(1 for key in keys if bucket.pop(key, None) is not None)

    async def publish(self, channel, message):
        self._check()
        self.published.append((channel, message))
        return 0

    async def lpush(self, key, *values):
        self._check()
        bucket = self.lists.setdefault(key, [])
        for value in values:
            bucket.insert(0, value)
        return len(bucket)

    async def lrange(self, key, start, end):
        self._check()
        bucket = self.lists.get(key, [])
        stop = len(bucket) if end == -1 else end + 1
        return bucket[start:stop]

    async def ltrim(self, key, start, end):
        self._check()
        bucket = self.lists.get(key, [])
        stop = len(bucket) if end == -1 else end + 1
        self.lists[key] = bucket[start:stop]
        return True


class ManualClock:
    """Controllable clock for breakers (float seconds) and caches (datetime)"""

    def __init__(self, start: datetime = datetime(2024, 6, 10, 12, 0, 0)):
        self.start = start
        self.elapsed = 0.0

    def advance(self, seconds: float):
        self.elapsed += seconds

    def monotonic(self) -> float:
        return self.elapsed

    def utcnow(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def failing_redis():
    return FakeRedis(fail=True)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def today():
    return date(2024, 6, 10)


@pytest.fixture
def sample_relationships():
    """Transactions -> Countries, Transactions -> Players, Players -> Countries, Bets -> Players"""
    return [
        ForeignKeyRelationship(
            parent_table="Transactions", parent_column="CountryID",
            referenced_table="Countries", referenced_column="CountryID"
        ),
        ForeignKeyRelationship(
            parent_table="Transactions", parent_column="PlayerID",
            referenced_table="Players", referenced_column="PlayerID"
        ),
        ForeignKeyRelationship(
            parent_table="Players", parent_column="CountryID",
            referenced_table="Countries", referenced_column="CountryID"
        ),
        ForeignKeyRelationship(
            parent_table="Bets", parent_column="PlayerID",
            referenced_table="Players", referenced_column="PlayerID"
        ),
    ]


@pytest.fixture
def catalog(sample_relationships):
    return GraphRelationshipCatalog(sample_relationships)


@pytest.fixture
def sample_schema():
    return SchemaContext(tables=[
        TableMetadata(
            table_name="Transactions",
            columns=[
                TableColumn(name="TransactionID", type="bigint"),
                TableColumn(name="CountryID", type="integer"),
                TableColumn(name="PlayerID", type="integer"),
                TableColumn(name="Amount", type="decimal(18,2)"),
                TableColumn(name="TransactionDate", type="date"),
            ]
        ),
        TableMetadata(
            table_name="Countries",
            columns=[
                TableColumn(name="CountryID", type="integer"),
                TableColumn(name="CountryName", type="varchar"),
            ]
        ),
    ])


@pytest.fixture
def last_seven_days(today):
    return TimeRange(
        start_date=today - timedelta(days=7),
        end_date=today,
        granularity=Granularity.DAY,
        relative_expression="last 7 days"
    )


@pytest.fixture
def revenue_profile(last_seven_days):
    return BusinessContextProfile(
        intent_type=IntentType.ANALYTICAL,
        business_terms=["total revenue by country"],
        time_context=last_seven_days,
        confidence_score=0.9
    )
