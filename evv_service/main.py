import logging
from fastapi import FastAPI
from evv_service.config import get_settings
from evv_service.visits.router import router as visits_router

logging.basicConfig(level=get_settings().log_level)

app = FastAPI(title="EVV Visit Verification Service")

app.include_router(visits_router)

@app.get("/health")
def health():
    return {"status": "ok"}
