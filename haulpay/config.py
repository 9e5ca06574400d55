import os
from dotenv import load_dotenv
load_dotenv()


def _api_base_url() -> str:
    raw = os.getenv("API_BASE_URL") or os.getenv("API_URL") or "http://localhost:8080"
    return f"{raw.strip().rstrip('/')}/api"


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    API_BASE_URL = _api_base_url()
    API_TIMEOUT = float(os.getenv("API_TIMEOUT", "30"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    RATES_PAGE_SIZE = 10
    AUDIT_TAKE = 50
    # httpx transport override; tests plug a MockTransport in here
    BACKEND_TRANSPORT = None
