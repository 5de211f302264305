"""FastAPI entry point for the 100 Pontinhos backend"""

import logging
import os

from .ws.server import app

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "info").upper())
logger = logging.getLogger(__name__)


@app.get("/")
async def root():
    return {"message": "100 Pontinhos Game API", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
