from fastapi import FastAPI
from shared.config.database import engine, Base
from shared.observability import setup_observability
from .router import router, public_router, register_exception_handlers
from . import models  # noqa: F401 registers tables with Base

shipping_label_app = FastAPI(
    title="Shipping Label Service",
    version="1.0.0"
)

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(shipping_label_app, "shipping_label_service")

register_exception_handlers(shipping_label_app)

shipping_label_app.include_router(public_router)
shipping_label_app.include_router(router)

@shipping_label_app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
