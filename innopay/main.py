import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager
from innopay.config import settings
from innopay.database import engine
from innopay import models


logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables
    models.Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="Innopay Settlement Hub",
    description="Settles restaurant orders across EURO tokens and HBD and tracks the debts left by failed transfers",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
def health_check():
    return {"status": "ok", "service": "innopay-settlement"}


from innopay.routers import payments, currency, debts  # noqa: E402
app.include_router(payments.router, prefix="/api/v1/payments", tags=["payments"])
app.include_router(currency.router, prefix="/api/v1/currency", tags=["currency"])
app.include_router(debts.router, prefix="/api/v1/outstanding-debt", tags=["debts"])
