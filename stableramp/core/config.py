from typing import Dict, List

from pydantic_settings import BaseSettings

ALPHAUSD_DEFAULT = "0x20c0000000000000000000000000000000000001"
BETAUSD_DEFAULT = "0x20c0000000000000000000000000000000000002"
THETAUSD_DEFAULT = "0x20c0000000000000000000000000000000000003"


def _split_csv(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseSettings):
    DB_URL: str = "sqlite+aiosqlite:///./stableramp.db"
    LOG_LEVEL: str = "INFO"

    # ledger endpoints, tried in order
    LEDGER_RPC_URL: str = ""
    LEDGER_RPC_URLS: str = ""
    LEDGER_RPC_TIMEOUT_SECONDS: float = 15.0

    ALPHAUSD_ADDRESS: str = ALPHAUSD_DEFAULT
    BETAUSD_ADDRESS: str = BETAUSD_DEFAULT
    THETAUSD_ADDRESS: str = THETAUSD_DEFAULT
    TOKEN_ADDRESSES: str = ""
    DEFAULT_TOKEN_DECIMALS: int = 6

    ACTIVITY_INITIAL_LOOKBACK_BLOCKS: int = 0
    ACTIVITY_MAX_BLOCK_RANGE: int = 100_000
    ACTIVITY_RPC_RETRIES: int = 5
    ACTIVITY_RPC_RETRY_DELAY_MS: int = 750

    OFFRAMP_PRIVATE_KEY: str = ""
    TRANSFER_MAX_ATTEMPTS: int = 3
    RECEIPT_TIMEOUT_SECONDS: float = 120.0
    RECEIPT_POLL_INTERVAL_SECONDS: float = 1.0

    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    STRIPE_TIMEOUT_SECONDS: float = 30.0
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def rpc_urls(self) -> List[str]:
        urls = _split_csv(self.LEDGER_RPC_URLS)
        if not urls and self.LEDGER_RPC_URL:
            urls = [self.LEDGER_RPC_URL.strip()]
        return urls

    @property
    def token_symbols(self) -> Dict[str, str]:
        return {
            "AlphaUSD": self.ALPHAUSD_ADDRESS,
            "BetaUSD": self.BETAUSD_ADDRESS,
            "ThetaUSD": self.THETAUSD_ADDRESS,
        }

    @property
    def sync_token_addresses(self) -> List[str]:
        configured = _split_csv(self.TOKEN_ADDRESSES)
        if configured:
            return configured
        return list(self.token_symbols.values())


settings = Settings()
