"""Application configuration derived from environment."""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Server settings. Every field can be overridden with DACHSBAU_<NAME>."""

    model_config = ConfigDict(env_prefix="DACHSBAU_")

    # Server
    debug: bool = False
    redis_url: str = "redis://localhost:6379/0"

    # Use Redis conditional primitives (SET NX, CAS script). When disabled the
    # store falls back to write-then-verify, as against a plain KV store.
    atomic_writes: bool = True

    # Cooldown
    cooldown_seconds: int = 30
    race_window_ms: int = 3000
    cooldown_ttl_seconds: int = 60

    # Economy
    max_balance: int = 999_999_999
    starting_balance: int = 100
    base_spin_cost: int = 10
    free_spin_cost_threshold: int = 1000
    low_balance_warning: int = 100
    daily_amount: int = 50
    daily_boost_amount: int = 250
    # The daily bonus resets at local midnight in this zone
    daily_timezone: str = "Europe/Berlin"

    # Retry / backoff for read-modify-write mutations
    max_retries: int = 3
    backoff_base_ms: int = 10

    # TTLs in seconds
    buff_ttl_buffer_seconds: int = 60
    streak_ttl_seconds: int = 7 * 24 * 3600
    peek_ttl_seconds: int = 3600
    jackpot_claim_ttl_seconds: int = 3600
    daily_ttl_seconds: int = 25 * 3600

    hourly_jackpot_amount: int = 100

    # Best-effort guards around background work and paid activations
    deferred_timeout_seconds: float = 5.0
    activation_timeout_seconds: float = 5.0


settings = Settings()
