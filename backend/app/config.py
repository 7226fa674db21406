from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
    )

    APP_NAME: str = "FranchiseAudits"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Finding recorder: score / max_score strictly below this ratio is a non-conformity
    NC_SCORE_THRESHOLD: float = 0.5
    NC_DEFAULT_SEVERITY: str = "medium"

    # Templates are shared by every tenant unless this is switched on
    TEMPLATES_TENANT_SCOPED: bool = False

    PLANNING_UPCOMING_DAYS: int = 7
    ARCHIVE_PAGE_SIZE: int = 20

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


settings = Settings()
