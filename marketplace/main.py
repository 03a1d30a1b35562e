from contextlib import asynccontextmanager

from fastapi import FastAPI
from marketplace.db import Base, engine
import marketplace.models  # noqa: F401 ensure models are imported so tables are known
from marketplace.api.routes import router as api_router
from marketplace.services import TrendingService
from marketplace.utils import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Ensure database tables are created on startup
    Base.metadata.create_all(bind=engine)
    service = TrendingService()
    service.start()
    app.state.trending = service
    logger.info("Marketplace backend ready")
    yield
    service.shutdown()


# create FastAPI instance
app = FastAPI(title="Marketplace", version="0.1.0", lifespan=lifespan)
app.include_router(api_router)
