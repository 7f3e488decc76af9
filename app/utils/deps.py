from fastapi import Request
from app.core.cache import CacheManager
from app.core.database import SessionLocal

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_transactional_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def get_cache(request: Request) -> CacheManager:
    """The CacheManager created at startup by the application lifespan."""
    return request.app.state.cache
