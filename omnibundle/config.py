from pathlib import Path
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


DEFAULT_RPC_URLS: Dict[int, str] = {
    1: "https://ethereum.publicnode.com",
    10: "https://optimism.publicnode.com",
    8453: "https://base.publicnode.com",
    42161: "https://arbitrum-one.publicnode.com",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Bundling relay
    relayr_base_url: str = Field(
        default="https://api.relayr.ba5ed.com",
        description="Base URL for the Relayr bundling API",
    )
    relayr_api_key: str = Field(default="", description="Relayr API key (sent as x-api-key)")
    relayr_app_id: str = Field(
        default="juicy-vision",
        description="App identifier used for balance-sponsored bundles",
    )
    relayr_timeout_seconds: int = Field(default=20, description="Relayr request timeout")
    relayr_perform_simulation: bool = Field(
        default=True,
        description="Ask the relay to simulate bundle transactions before accepting them",
    )
    relayr_payment_address: str = Field(
        default="",
        description="Relay address that receives prepaid bundle payments (empty disables self-paid bundles)",
    )

    # Chain RPC
    rpc_urls: Dict[int, str] = Field(
        default_factory=lambda: dict(DEFAULT_RPC_URLS),
        description="JSON-RPC endpoint per chain ID",
    )
    rpc_timeout_seconds: float = Field(default=10.0, description="Timeout for RPC reads")
    rpc_retries: int = Field(default=1, description="Retries for a failed RPC read")
    receipt_poll_interval_seconds: float = Field(
        default=2.0,
        description="Delay between receipt polls while waiting for confirmation",
    )
    receipt_timeout_seconds: int = Field(
        default=600,
        description="How long to wait for a receipt before giving up on a chain",
    )

    # Managed (custodial) wallet
    managed_wallet_base_url: str = Field(
        default="",
        description="Base URL of the managed wallet backend (empty disables managed mode)",
    )
    managed_wallet_token: str = Field(default="", description="Bearer token for the managed wallet backend")

    # Bundle orchestration
    bundle_poll_interval_seconds: float = Field(
        default=3.0,
        description="Relay status polling cadence for bundled operations",
    )
    prefer_bundling: bool = Field(
        default=True,
        description="Use the bundling relay for multi-chain operations unless the caller opts out",
    )
    auto_select_payment_chain: bool = Field(
        default=False,
        description="Commit the cheapest affordable payment chain without waiting for the user",
    )
    synchronized_start_delay_seconds: int = Field(
        default=300,
        description="Offset applied to the shared ruleset start time of multi-chain operations",
    )

    # Permit2
    permit_expiration_seconds: int = Field(
        default=30 * 24 * 60 * 60,
        description="Lifetime of a Permit2 allowance",
    )
    permit_sig_deadline_seconds: int = Field(
        default=30 * 60,
        description="Lifetime of a Permit2 signature",
    )

    error_display_length: int = Field(
        default=100,
        description="Maximum length of an error message surfaced on a chain state",
    )


settings = Settings()
