from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Paths ──────────────────────────────────────────────────
    output_dir: Path = Path("output")

    # ── Snapchat ───────────────────────────────────────────────
    snapchat_client_id: str = ""
    snapchat_client_secret: str = ""
    snapchat_brand_name: str = "Creator OS"
    snapchat_token_lookahead_seconds: int = 300

    # ── Instagram (Graph API) ──────────────────────────────────
    instagram_app_id: str = ""
    instagram_app_secret: str = ""
    instagram_graph_version: str = "v18.0"
    instagram_poll_interval_seconds: float = 6.0
    instagram_poll_max_attempts: int = 20
    instagram_token_lookahead_days: int = 7

    # ── YouTube ────────────────────────────────────────────────
    youtube_client_id: str = ""
    youtube_client_secret: str = ""
    youtube_default_privacy: str = "public"
    youtube_token_lookahead_seconds: int = 300

    # ── Analytics ──────────────────────────────────────────────
    analytics_read_max_age_minutes: int = 30
    analytics_batch_max_age_minutes: int = 60

    # ── Cron ───────────────────────────────────────────────────
    cron_secret: str = ""

    # ── App ────────────────────────────────────────────────────
    log_level: str = "INFO"

    @property
    def root_dir(self) -> Path:
        return Path(__file__).parent.parent

    @property
    def database_path(self) -> Path:
        return self.output_dir / "creatoros.db"

    @property
    def instagram_graph_base(self) -> str:
        return f"https://graph.facebook.com/{self.instagram_graph_version}"

    def ensure_output_dirs(self) -> None:
        """Create output directories if they don't exist."""
        self.output_dir.mkdir(parents=True, exist_ok=True)


settings = Settings()
