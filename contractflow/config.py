
from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_env: str = "dev"
    database_url: str = "sqlite:///./data/contractflow.db"
    sql_echo: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Sesiones opacas emitidas por el IdentityProvider
    session_ttl_hours: int = 24

    # Workflow
    carry_over_blueprint_defaults: bool = False
    strict_field_schema: bool = True
    max_write_retries: int = 3

settings = Settings()  # reads from env
