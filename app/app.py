# Main script to run the cadence api, prepare the database and mount the routers

import logging
from contextlib import asynccontextmanager
import database
import db_setup
from fastapi import FastAPI
from routers import recurrence, events

# Initialize logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Check if the database is set up, if not, create it and the series table
    db_setup.setup_database()
    yield
    database.close_connection()


# Initialize FastAPI app
app = FastAPI(title="Cadence-API", version="0.1.0", lifespan=lifespan)

# Include routers
app.include_router(recurrence.router, prefix="/recurrence", tags=["recurrence"])
app.include_router(events.router, prefix="/events", tags=["events"])


# Health check endpoint
@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
