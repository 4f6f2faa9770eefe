from pydantic_settings import BaseSettings
from dotenv import load_dotenv
from pathlib import Path


load_dotenv()


class Settings(BaseSettings):
    app_name: str = "AgriTrace API"
    debug: bool = False
    database_url: str = "sqlite:///./agritrace.db"
    host: str = "127.0.0.1"
    port: int = 8000
    secret_key: str = ""
    access_token_expire_minutes: int = 60 * 24
    allowed_hosts: str = ""
    # Origin of the web client; QR trace links point here.
    site_url: str = "http://localhost:5173"
    log_file: Path = Path("logs") / "application.log"


settings = Settings()

if not settings.secret_key:
    raise RuntimeError("Secret key not configured.")
