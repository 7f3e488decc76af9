import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ["REDIS_URL"] = ""

import pytest
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.core.database import Base
from app.core.cache import CacheManager, MemoryCacheBackend
from app.models.product import Product
from app.models.cart_item import CartItem  # noqa: F401
from app.utils import deps as deps_utils
from tests.helpers.cache import FailingCacheBackend, RecordingCacheBackend
import main


@pytest.fixture(scope="function")
def database_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture(scope="function")
def db_session(database_engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=database_engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()

@pytest.fixture
def cache():
    return CacheManager(MemoryCacheBackend())

@pytest.fixture
def failing_cache():
    return CacheManager(FailingCacheBackend())

@pytest.fixture
def recording_cache():
    return CacheManager(RecordingCacheBackend())

@pytest.fixture(scope="function")
def client(db_session, cache):
    main.app.dependency_overrides[deps_utils.get_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_transactional_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_cache] = lambda: cache
    with TestClient(main.app, raise_server_exceptions=False) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()

@pytest.fixture
def product_factory(db_session):
    counter = {"n": 0}

    def _product_factory(name=None, price="10.00", category="electronics", in_stock=True):
        counter["n"] += 1
        product = Product(
            name=name or f"Product {counter['n']}",
            description=f"Description {counter['n']}",
            price=Decimal(price),
            category=category,
            in_stock=in_stock,
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product
    return _product_factory
