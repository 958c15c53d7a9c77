# run_db_setup.py
import logging

from embedvideo.db import Base, engine
from embedvideo.models import models  # noqa: F401  (registers the tables)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("run_db_setup")

logger.info("🔧 Creating tables: %s", ", ".join(Base.metadata.tables))
Base.metadata.create_all(bind=engine)
logger.info("✅ Done.")
