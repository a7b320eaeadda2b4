from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    source_path: str
    output_dir: str
    top_n: int
    default_parallelism: int
    spark_master: str
    spark_log_level: str
    schedule_hour_utc: int
    schedule_minute_utc: int


def get_settings() -> Settings:
    top_n = int(os.getenv("TOP_N", "10"))
    if top_n < 0:
        raise ValueError(f"TOP_N must be >= 0, got {top_n}")
    return Settings(
        app_name=os.getenv("APP_NAME", "beermap"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./beermap.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        source_path=os.getenv("SOURCE_PATH", "./data/beermap.json"),
        output_dir=os.getenv("OUTPUT_DIR", "./outputs"),
        top_n=top_n,
        default_parallelism=int(os.getenv("DEFAULT_PARALLELISM", "4")),
        spark_master=os.getenv("SPARK_MASTER", "local[*]"),
        spark_log_level=os.getenv("SPARK_LOG_LEVEL", "ERROR"),
        schedule_hour_utc=int(os.getenv("SCHEDULE_HOUR_UTC", "2")),
        schedule_minute_utc=int(os.getenv("SCHEDULE_MINUTE_UTC", "0")),
    )
