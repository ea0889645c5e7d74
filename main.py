import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

import uvicorn
from apscheduler.schedulers.background import BackgroundScheduler
from dateutil.relativedelta import relativedelta
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from analytics import month_of
from auth import auth_router
from backup import backup_router
from config import get_settings
from database import Base, Bill, SessionLocal, engine
from router import router

settings = get_settings()

# Configure logging
LOG_LEVEL = getattr(logging, settings.log_level.upper(), logging.INFO)
logging.basicConfig(
    level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)


# Bills whose last billing month is over are switched off. Their past months
# still report them, see analytics.bill_statuses.
def deactivate_expired_bills(today: Optional[date] = None) -> int:
    last_month = month_of((today or date.today()) - relativedelta(months=1))
    with SessionLocal() as db:
        expired = (
            db.query(Bill)
            .filter(
                Bill.is_active.is_(True),
                Bill.end_month != "ongoing",
                Bill.end_month <= last_month,
            )
            .all()
        )

        for bill in expired:
            bill.is_active = False

        db.commit()

    if expired:
        logger.info("Deactivated %d expired bills", len(expired))
    return len(expired)


scheduler = BackgroundScheduler()
scheduler.add_job(
    deactivate_expired_bills, "cron", hour=0, minute=0
)  # Run daily at midnight


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.enable_scheduler:
        scheduler.start()
        logger.info("Scheduler started")
    yield
    if scheduler.running:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Personal Finance Tracker API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")
app.include_router(backup_router, prefix="/api", tags=["backup"])
app.include_router(auth_router, prefix="/auth", tags=["authentication"])


@app.get("/")
def home():
    return {"message": "Welcome to Personal Finance Tracker API"}


@app.get("/api/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
