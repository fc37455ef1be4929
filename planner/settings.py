# planner/settings.py

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Itinerary Scheduling Engine"
    API_V1_STR: str = "/Prod"

    # Default calendar grid shown by the builder view
    GRID_INTERVAL_MINUTES: int = 30  # one of 15, 30, 60
    GRID_START_HOUR: int = 6
    GRID_END_HOUR: int = 23
    DEFAULT_VIEW_DAYS: int = 7

    # Used when an unplaced item carries no declared duration
    DEFAULT_ACTIVITY_DURATION_MINUTES: int = 60

    # Inputs for the default conflict detector
    BUSINESS_HOURS_START: str = "08:00"
    BUSINESS_HOURS_END: str = "22:00"
    TRAVEL_BUFFER_MINUTES: int = 0

    # "memory" keeps everything in-process, "dynamodb" uses the tables below
    STORE_BACKEND: str = "memory"
    AWS_REGION: str = "eu-north-1"
    DYNAMODB_ENTITIES_TABLE_NAME: str = "ItineraryEntities"
    DYNAMODB_SLOTS_TABLE_NAME: str = "ItinerarySlots"
    AWS_DYNAMODB_ENDPOINT_URL: Optional[str] = None  # Optional for local development/testing

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'


settings = Settings()
