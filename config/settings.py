from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Database (SQLite locally, Postgres hosted, empty keeps everything in memory)
    database_url: str = "sqlite+aiosqlite:///./paperhand.db"

    # Multi-tenant: fan-out delivers only to the owning user's channels
    multi_tenant: bool = False
    default_user_id: int = 1

    # Auth (JWT issued by the outer auth layer, verified here for SSE routing)
    jwt_secret: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"

    # Helius (Solana RPC + enhanced WebSocket)
    helius_api_key: str = ""
    helius_rpc_url: str = ""
    helius_ws_url: str = ""
    helius_max_rps: float = 10.0

    # Cielo Finance wallet feed
    cielo_api_key: str = ""
    cielo_max_rps: float = 2.0

    # DexScreener
    dexscreener_max_rps: float = 4.0

    # Cache TTLs
    price_cache_ttl_sec: float = 300.0
    wallet_feed_ttl_sec: float = 60.0
    holder_cache_ttl_sec: float = 300.0
    holder_top_n: int = 20

    # Price sweep
    price_sweep_interval_sec: int = 900  # 15 min
    price_sweep_lookback_days: int = 7
    price_sweep_item_delay_sec: float = 0.2  # DexScreener/Helius courtesy
    recheck_item_delay_sec: float = 0.5
    trade_sync_item_delay_sec: float = 0.3

    # Live transaction monitor
    ws_ping_interval_sec: float = 30.0
    ws_reconnect_base_delay_sec: float = 3.0
    ws_max_reconnect_attempts: int = 10
    ws_wallet_switch_grace_sec: float = 1.0

    # Dashboard
    dashboard_port: int = 3777
    cors_origins: str = "http://localhost:3778,http://localhost:3777"


settings = Settings()
