"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible) ───────────────────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "buchat"

    @property
    def tidb_url(self) -> str:
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    db_pool_size: int = 10
    db_max_overflow: int = 5
    db_pool_recycle: int = 1800        # seconds
    db_echo: bool = False

    # ── MinIO / S3 (media) ─────────────────────────────────────────────────
    minio_endpoint: str = "minio:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_bucket: str = "media"
    minio_use_ssl: bool = False
    upload_url_ttl: int = 600            # presigned PUT, 10 min
    download_url_ttl: int = 3600         # presigned GET, 1 h

    # ── Store caps (how much history / candidates each handler reads) ──────
    interaction_history_limit: int = 500
    vote_history_limit: int = 50
    upvoted_posts_resolved: int = 10
    personalized_candidate_limit: int = 200
    recommendation_candidate_limit: int = 100
    trending_candidate_limit: int = 500
    community_scan_limit: int = 100

    # ── Default page sizes per route ───────────────────────────────────────
    community_posts_page_size: int = 25
    trending_page_size: int = 10
    personalized_page_size: int = 25
    recommendations_page_size: int = 10
    discover_page_size: int = 5
    trending_topics_page_size: int = 20

    # ── Observability ──────────────────────────────────────────────────────
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "buchat-api"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
