import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_PATH = os.getenv("PLANNER_DB_PATH", "planner.db")

# Title of the "no category" section until the user renames it
DEFAULT_GENERAL_TITLE = os.getenv("PLANNER_GENERAL_TITLE", "Общие")

LOG_LEVEL = os.getenv("PLANNER_LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("PLANNER_CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
