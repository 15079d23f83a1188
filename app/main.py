from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from config import DEBUG, APP_HOST, APP_PORT, LOG_LEVEL
from database.init import Base, engine
import database.models  # noqa: F401  registers the tables on Base
from routes import booking_routes, payment_routes, room_routes
from utils.logger import logger


Base.metadata.create_all(bind=engine)

app = FastAPI(title="Hostel Booking API", debug=DEBUG)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(room_routes.router)
app.include_router(booking_routes.router)
app.include_router(payment_routes.router)

logger.info("Hostel Booking API ready")


@app.get("/")
def read_root():
    return {"name": "Hostel Booking API", "version": "1.0.0"}


if __name__ == "__main__":
    uvicorn.run("main:app", host=APP_HOST, port=APP_PORT, reload=DEBUG, log_level=LOG_LEVEL.lower())
