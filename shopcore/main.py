# shopcore/main.py
import uvicorn

from shopcore.api import create_app
from shopcore.data.database import Base, engine
from shopcore.data import models  # noqa: F401 - rejestracja modeli w Base.metadata
from shopcore.utils.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)

logger.info(f"Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
