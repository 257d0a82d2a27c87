from pathlib import Path
from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv()


class Settings(BaseModel):
    gcp_project: str = ""
    gcp_location: str = "us-central1"
    gcp_credentials_path: str = ""
    api_key: str = ""
    api_base_url: str = ""
    model_name: str = "gemini-2.5-flash"
    request_timeout_ms: int = 60000
    batch_size: int = 10
    max_attempts: int = 3
    initial_delay: float = 1.0
    input_dir: str = "data/input"
    output_dir: str = "data/output"
    slack_webhook_url: str = ""
    slack_token: str = ""
    slack_channel: str = "#data-validation"
    workers: int = 8

    @property
    def llm_enabled(self) -> bool:
        if self.api_key:
            return True
        return bool(self.gcp_project) and bool(self.gcp_credentials_path) and Path(self.gcp_credentials_path).exists()


def get_settings() -> Settings:
    return Settings(
        gcp_project=os.getenv("GCP_PROJECT", ""),
        gcp_location=os.getenv("GCP_LOCATION", "us-central1"),
        gcp_credentials_path=os.getenv("GOOGLE_APPLICATION_CREDENTIALS", ""),
        api_key=os.getenv("GOOGLE_API_KEY", ""),
        api_base_url=os.getenv("VERTEX_BASE_URL", ""),
        model_name=os.getenv("VERTEX_MODEL", "gemini-2.5-flash"),
        request_timeout_ms=int(os.getenv("VERTEX_TIMEOUT_MS", "60000")),
        batch_size=int(os.getenv("VALIDATION_BATCH_SIZE", "10")),
        max_attempts=int(os.getenv("VALIDATION_MAX_ATTEMPTS", "3")),
        initial_delay=float(os.getenv("VALIDATION_INITIAL_DELAY", "1.0")),
        input_dir=os.getenv("INPUT_DIR", "data/input"),
        output_dir=os.getenv("OUTPUT_DIR", "data/output"),
        slack_webhook_url=os.getenv("SLACK_WEBHOOK_URL", ""),
        slack_token=os.getenv("SLACK_TOKEN", ""),
        slack_channel=os.getenv("SLACK_CHANNEL", "#data-validation"),
        workers=int(os.getenv("WORKERS", "8")),
    )
