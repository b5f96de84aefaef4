from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

ALCHEMY_NETWORK_SLUGS = {
    1: "eth-mainnet",
    10: "opt-mainnet",
    137: "polygon-mainnet",
    42161: "arb-mainnet",
    8453: "base-mainnet",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    def model_post_init(self, __context: Any) -> None:
        """Normalise values that downstream comparisons rely on."""

        super().model_post_init(__context)

        if self.swap_fee_recipient:
            object.__setattr__(self, "swap_fee_recipient", self.swap_fee_recipient.strip().lower())
        if self.app_origin:
            object.__setattr__(self, "app_origin", self.app_origin.rstrip("/"))

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Chain
    chain_id: int = Field(default=8453, description="Chain the orchestrator operates on (Base by default)")
    rpc_url: str = Field(default="", description="JSON-RPC endpoint for chain reads")
    alchemy_api_key: str = Field(default="", description="Alchemy API key used when rpc_url is not set")
    wallet_rpc_url: str = Field(
        default="",
        description="EIP-1193 / EIP-5792 wallet endpoint used for call submission",
    )
    request_timeout_seconds: int = Field(default=30, description="Request timeout")

    # 0x Swap API
    zeroex_base_url: str = Field(default="https://api.0x.org", description="0x Swap API base URL")
    zeroex_api_key: str = Field(
        default="",
        description="0x API key",
        validation_alias=AliasChoices("zeroex_api_key", "ZEROEX_API_KEY", "NEXT_PUBLIC_ZEROEX_API_KEY"),
    )
    swap_fee_bps: int = Field(default=100, ge=0, le=1000, description="Integrator fee in basis points")
    swap_fee_recipient: str = Field(
        default="",
        description="Wallet receiving the integrator fee; fee params are omitted when empty",
        validation_alias=AliasChoices("swap_fee_recipient", "SWAP_FEE_RECIPIENT", "NEXT_PUBLIC_FEE_RECIPIENT"),
    )
    default_slippage_bps: int = Field(default=50, ge=0, le=5000, description="Default slippage in basis points")

    # Quote retry policy
    quote_max_attempts: int = Field(default=3, ge=1, description="Upstream attempts per leg")
    quote_retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Backoff base; attempt n waits base * n seconds",
    )
    quote_ttl_seconds: int = Field(default=60, ge=1, description="How long a combined quote may be executed")

    # Execution
    approval_policy: Literal["unlimited", "exact"] = Field(
        default="unlimited",
        description="Approve the maximum uint256 or only the amount each swap needs",
    )
    sequential_settle_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Pause between sequential calls so dependent state can propagate",
    )
    batch_status_poll_interval_seconds: float = Field(default=1.0, gt=0)
    batch_status_timeout_seconds: int = Field(default=180, ge=1)
    receipt_poll_interval_seconds: float = Field(default=2.0, gt=0)
    receipt_timeout_seconds: int = Field(default=300, ge=1)

    # Collaborators
    notification_webhook_url: str = Field(default="", description="Endpoint notifications are posted to")
    notification_min_interval_seconds: int = Field(default=30, ge=0)
    app_origin: str = Field(default="", description="Origin notification target URLs must stay on")

    @property
    def has_zeroex_key(self) -> bool:
        return bool(self.zeroex_api_key)

    @property
    def has_fee_recipient(self) -> bool:
        return bool(self.swap_fee_recipient)

    @property
    def resolved_rpc_url(self) -> str:
        """Explicit RPC URL first, then an Alchemy URL for the configured chain."""
        if self.rpc_url:
            return self.rpc_url
        slug = ALCHEMY_NETWORK_SLUGS.get(self.chain_id)
        if slug and self.alchemy_api_key:
            return f"https://{slug}.g.alchemy.com/v2/{self.alchemy_api_key}"
        return ""


# Global settings instance
settings = Settings()
