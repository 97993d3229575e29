import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from palletpro.config import settings
from palletpro.db import engine, init_db
from palletpro.routers import dashboard, fees, inventory

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(engine)
    yield


app = FastAPI(title='PalletPro Analytics', lifespan=lifespan)

app.include_router(dashboard.router)
app.include_router(inventory.router)
app.include_router(fees.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok', 'snapshot_provider': settings.snapshot_provider}
