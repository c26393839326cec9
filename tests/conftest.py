"""Pytest fixtures for testing"""

import pytest
from typing import Dict, Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from peer_trust.api.main import create_app
from peer_trust.config import Settings
from peer_trust.domain.groups import GroupRegistry
from peer_trust.domain.ledger import InMemoryTransferLedger
from peer_trust.domain.models import CustomerProfile, ExecutionResult, TransferRequest, ValidationResult
from peer_trust.domain.relationships import RelationshipStore
from peer_trust.infrastructure.database.models import Base
from peer_trust.infrastructure.database.session import get_db
from peer_trust.network import PeerNetwork


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeProfileProvider:
    """In-memory profile provider"""

    def __init__(self, profiles: List[CustomerProfile] = ()):
        self.profiles: Dict[str, CustomerProfile] = {p.customer_id: p for p in profiles}

    def add(
        self,
        customer_id: str,
        trust_score: float = 80.0,
        vip_tier: int = 0,
        region: Optional[str] = None,
        payment_methods: Optional[List[str]] = None,
        total_transactions: int = 0,
    ) -> CustomerProfile:
        profile = CustomerProfile(
            customer_id=customer_id,
            trust_score=trust_score,
            vip_tier=vip_tier,
            region=region,
            payment_methods=payment_methods or ["venmo"],
            total_transactions=total_transactions,
        )
        self.profiles[customer_id] = profile
        return profile

    async def get_profile(self, customer_id: str) -> Optional[CustomerProfile]:
        return self.profiles.get(customer_id)

    async def list_profiles(self) -> List[CustomerProfile]:
        return list(self.profiles.values())


class FakeValidator:
    """Payment validator returning a fixed risk level per customer"""

    def __init__(self, risk_level: str = "low"):
        self.risk_level = risk_level
        self.levels: Dict[str, str] = {}
        self.error: Optional[Exception] = None
        self.calls: List[str] = []

    async def validate(self, customer_id, method, address, amount, context) -> ValidationResult:
        self.calls.append(customer_id)
        if self.error is not None:
            raise self.error
        return ValidationResult(validation_score=90.0, risk_level=self.levels.get(customer_id, self.risk_level))


class FakeExecutor:
    """Transfer executor replaying queued outcomes, then succeeding"""

    def __init__(self, outcomes=()):
        self.outcomes = list(outcomes)
        self.calls: List[TransferRequest] = []

    async def execute(self, request: TransferRequest) -> ExecutionResult:
        self.calls.append(request)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return ExecutionResult(success=True, reference=f"ref_{request.transaction_id}")


@pytest.fixture
def test_settings() -> Settings:
    """Default settings without retry delays"""
    return Settings(retry_delay_seconds=0.0)


@pytest.fixture
def profiles() -> FakeProfileProvider:
    provider = FakeProfileProvider()
    provider.add("alice", trust_score=85, region="US-West", payment_methods=["venmo", "zelle"])
    provider.add("bob", trust_score=82, region="US-West", payment_methods=["venmo"])
    provider.add("carol", trust_score=78, region="US-East", payment_methods=["zelle"])
    provider.add("dave", trust_score=72, region="US-East", payment_methods=["cashapp"])
    provider.add("erin", trust_score=95, vip_tier=3, region="US-West", payment_methods=["paypal"])
    provider.add("frank", trust_score=60, region="US-East", payment_methods=["venmo"])
    provider.add("grace", trust_score=92, vip_tier=1, region="US-West", payment_methods=["paypal"])
    return provider


@pytest.fixture
def validator() -> FakeValidator:
    return FakeValidator()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def relationships() -> RelationshipStore:
    return RelationshipStore()


@pytest.fixture
def ledger() -> InMemoryTransferLedger:
    return InMemoryTransferLedger()


@pytest.fixture
def groups(profiles: FakeProfileProvider, relationships: RelationshipStore) -> GroupRegistry:
    return GroupRegistry(profiles, relationships)


@pytest.fixture
def network(profiles, validator, executor, test_settings, ledger) -> PeerNetwork:
    """Peer network over fakes and an in-memory ledger"""
    return PeerNetwork(profiles, validator, executor, config=test_settings, ledger=ledger)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session, network: PeerNetwork) -> TestClient:
    """Create FastAPI test client with test database and fake collaborators"""
    app = create_app(network)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)
