from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

# Mainnet defaults used by the USDC -> sUSDe vault deployment
DEFAULT_USDC_ADDRESS = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
DEFAULT_SUSDE_ADDRESS = "0x9D39A5DE30e57443BfF2A8307A4256c8797A3497"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Register the primary RPC endpoint under the configured chain id."""

        super().model_post_init(__context)

        if self.rpc_url and self.chain_id not in self.rpc_urls:
            urls = dict(self.rpc_urls)
            urls[self.chain_id] = self.rpc_url
            object.__setattr__(self, "rpc_urls", urls)

    log_level: str = Field(default="INFO", description="Logging level")

    # Signer
    private_key: str = Field(default="", description="Hex private key of the signing account")

    # Chain access
    chain_id: int = Field(default=1, description="Chain the vault lives on")
    rpc_url: str = Field(
        default="",
        description="JSON-RPC endpoint for chain_id",
        validation_alias=AliasChoices("rpc_url", "eth_rpc_url", "RPC_URL", "ETH_RPC_URL"),
    )
    rpc_urls: Dict[int, str] = Field(
        default_factory=dict,
        description="Extra JSON-RPC endpoints keyed by chain id (cross-chain routes)",
    )
    request_timeout_seconds: int = Field(default=20, description="HTTP timeout for RPC and aggregator calls")

    # Aggregator
    lifi_api_key: str = Field(default="", description="LI.FI API key")
    lifi_base_url: str = Field(default="", description="Override the default LI.FI API base URL")
    lifi_integrator: str = Field(default="vaultpilot", description="Integrator tag sent with every quote")
    slippage_bps: int = Field(default=50, ge=0, le=10_000, description="Quote slippage tolerance in bps")
    lifi_allow_bridges: List[str] = Field(
        default_factory=list,
        description='Bridges a route may use, as JSON (e.g. ["across","stargate","hop"]); empty allows all',
    )
    lifi_prefer_exchanges: List[str] = Field(
        default_factory=list,
        description='Exchanges to prefer when routing, as JSON (e.g. ["1inch","uniswap"])',
    )

    # Targets
    vault_address: str = Field(default="", description="Router-gated vault holding the position")
    source_asset_address: str = Field(
        default=DEFAULT_USDC_ADDRESS,
        description="Base asset pulled from the signer",
        validation_alias=AliasChoices("source_asset_address", "usdc_address"),
    )
    target_asset_address: str = Field(
        default=DEFAULT_SUSDE_ADDRESS,
        description="Yield-bearing asset the base asset is converted into",
        validation_alias=AliasChoices("target_asset_address", "susde_address"),
    )
    target_vault_4626_address: str = Field(
        default="",
        description="ERC-4626 share token used to preview deposits and redemptions",
        validation_alias=AliasChoices("target_vault_4626_address", "rsusde_4626_address"),
    )

    # Amounts & policy
    amount: Decimal = Field(
        default=Decimal("1"),
        gt=0,
        description="Amount of the source asset to process (human units)",
        validation_alias=AliasChoices("amount", "amount_usdc"),
    )
    withdraw_fraction_bps: int = Field(default=5000, ge=1, description="Share of the position to redeem")
    auto_allow_router: bool = Field(default=True, description="Authorize unseen routers on the vault")
    gas_buffer_wei: int = Field(
        default=300_000_000_000_000,
        ge=0,
        description="Native balance kept back for gas when spending the full balance",
    )

    # Swap-and-deposit extras (liquid staking and collateral vaults)
    stake_contract_address: str = Field(
        default="",
        description="Liquid-staking token minted by submit(address) with native value (e.g. stETH)",
    )
    wrapper_address: str = Field(
        default="",
        description="Wrapper whose wrap(uint256) converts the held token before depositing (e.g. wstETH)",
    )
    deposit_vault_kind: str = Field(
        default="erc4626",
        pattern="^(erc4626|collateral)$",
        description="erc4626 for deposit(assets,receiver); collateral for deposit(onBehalfOf,amount)",
    )

    # Execution
    gas_multiplier: float = Field(default=1.1, ge=1.0, description="Safety margin applied to gas estimates")
    confirmation_timeout_seconds: int = Field(
        default=600,
        ge=0,
        description="Deadline for a transaction to confirm; 0 waits indefinitely",
    )
    poll_interval_seconds: float = Field(default=2.0, gt=0, description="Receipt polling interval")
    required_confirmations: int = Field(default=1, ge=1, description="Blocks required before a receipt counts")

    # Vault ABI (router-gated vault)
    vault_router_allowed_signature: str = Field(default="isRouterAllowed(address)")
    vault_set_router_allowed_signature: str = Field(default="setRouterAllowed(address,bool)")
    vault_deposit_via_router_signature: str = Field(
        default="depositUSDCViaRouter(uint256,address,bytes,uint256,uint256)"
    )
    vault_withdraw_via_router_signature: str = Field(
        default="withdrawSplitToUSDC(uint256,address,bytes,uint256)"
    )
    vault_user_shares_signature: str = Field(default="userShares(address)")
    vault_current_assets_signature: str = Field(default="currentAssetsOf(address)")

    @property
    def has_private_key(self) -> bool:
        return bool(self.private_key)

    @property
    def has_lifi_key(self) -> bool:
        return bool(self.lifi_api_key)

    @property
    def confirmation_deadline(self) -> Optional[float]:
        """Seconds to wait for a receipt, or ``None`` for an unbounded wait."""
        if self.confirmation_timeout_seconds <= 0:
            return None
        return float(self.confirmation_timeout_seconds)

    def rpc_url_for(self, chain_id: int) -> str:
        url = self.rpc_urls.get(chain_id)
        if not url:
            raise ValueError(f"No RPC URL configured for chain {chain_id}")
        return url

    def missing_required(self, *, vault: bool = True) -> List[str]:
        """Names of settings that must be present before a workflow can run."""
        missing = []
        if not self.private_key:
            missing.append("PRIVATE_KEY")
        if not self.rpc_url:
            missing.append("RPC_URL")
        if not self.lifi_api_key:
            missing.append("LIFI_API_KEY")
        if vault:
            if not self.vault_address:
                missing.append("VAULT_ADDRESS")
            if not self.target_vault_4626_address:
                missing.append("TARGET_VAULT_4626_ADDRESS")
        return missing


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build the settings once per process."""
    return Settings()
