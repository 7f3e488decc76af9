from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.core.config import settings
from app.core.cache import init_cache, close_cache
from app.core.database import dispose_engine
from app.core.logging import configure_logging
from app.endpoints import product, cart, health
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.exceptions import global_exception_handler, http_exception_handler, validation_exception_handler
import logging

configure_logging()
logger = logging.getLogger("app.main")

@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.cache = await init_cache(settings)
    logger.info(f"{settings.PROJECT_NAME} starting up")
    yield
    await close_cache(app.state.cache)
    dispose_engine()
    logger.info(f"{settings.PROJECT_NAME} shut down")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

app.include_router(product.router, prefix=f"{settings.API_PREFIX}/products", tags=["Products"])
app.include_router(cart.router, prefix=f"{settings.API_PREFIX}/cart", tags=["Cart"])
app.include_router(health.router, tags=["Health"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
