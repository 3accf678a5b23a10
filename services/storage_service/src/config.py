from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    service_name: str = "storage-service"
    project_id: Optional[str] = None
    default_location: Optional[str] = None

    # Retry tuning for single GCS calls (first try + retries)
    insert_retry_count: int = 5
    retry_backoff_base_ms: int = 0
    retry_backoff_cap_ms: int = 2000
    retry_budget_s: Optional[float] = None

    # Bucket reconciliation
    max_conflict_cycles: int = 3
    reconcile_budget_s: Optional[float] = None

settings = Settings()
