from datetime import time

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):

    # Database
    database_url: str = "sqlite:///./tischplan.db"

    # App
    app_name: str = 'Tischplan'
    debug: bool = False
    log_file: str = "logs/app.log"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Restaurant (ein Standort, eine Zeitzone)
    timezone: str = "Europe/Berlin"
    closing_time: time = time(23, 0)

    # Buchungen
    default_duration_minutes: int = 60
    min_duration_minutes: int = 15
    duration_step_minutes: int = 15
    cleanup_buffer_minutes: int = 5
    auto_schedule_fallback_lookahead_minutes: int = 240
    booked_horizon_minutes: int = 120
    manual_override_minutes: int = 180

    # Warteliste & Erinnerungen
    pre_booking_priority: int = 1
    reminder_minutes_before: list[int] = [30, 15]
    long_waiting_minutes: int = 30

    # Hintergrund-Jobs
    enable_background_jobs: bool = True
    status_sync_interval_seconds: int = 60
    notification_sweep_interval_seconds: int = 120

    # Mail config
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""

    # Absender
    company_name: str = "Restaurant"
    company_phone: str = ""


settings = Settings()
