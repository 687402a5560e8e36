from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / ".unitize" / "data"
    sqlite_filename: str = "unitize.db"
    catalog_seed_path: Path | None = None
    log_level: str = "info"

    default_due_limit: int = 20
    max_due_limit: int = 200
    review_max_attempts: int = 5  # compare-and-swap attempts per review

    # Spaced repetition policy
    srs_initial_ease: float = 2.5
    srs_min_ease: float = 1.3
    srs_max_ease: float = 2.5
    srs_max_interval_days: int = 365
    srs_first_intervals: dict[str, int] = {"again": 1, "hard": 2, "good": 3, "easy": 5}
    srs_hard_multiplier: float = 1.2
    srs_easy_bonus: float = 1.5
    srs_again_ease_penalty: float = 0.2
    srs_hard_ease_penalty: float = 0.15
    srs_easy_ease_bonus: float = 0.15

    model_config = {"env_prefix": "UNITIZE_"}


settings = Settings()
