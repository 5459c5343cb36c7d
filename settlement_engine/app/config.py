import os
from decimal import Decimal
from typing import List

class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def __init__(self) -> None:
        self.env = os.getenv('APP_ENV', 'local')
        # Single fixed GST regime: CGST and SGST are each half of this rate.
        self.gst_rate_percent = Decimal(os.getenv("GST_RATE_PERCENT", "18").strip() or "18")
        self.api_url = os.getenv("BILLING_API_URL", "http://localhost:5000").strip() or "http://localhost:5000"
        self.api_token = os.getenv("BILLING_API_TOKEN", "").strip()
        self.api_timeout_s = int(os.getenv("BILLING_API_TIMEOUT_S", "30").strip() or "30")
        # Comma-separated list of allowed CORS origins for the billing front end.
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:3000", "http://127.0.0.1:3000"],
        )
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"

settings = Settings()
