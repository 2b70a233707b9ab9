from pydantic_settings import BaseSettings, SettingsConfigDict

PROMPT_PLACEHOLDER = "{{prompt}}"
MODEL_PLACEHOLDER = "{{model}}"

REMOTE_PROVIDERS = ("openai",)
CLI_PROVIDERS = ("codex", "claude")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    port: int = 3000

    # Shared secrets (empty = every authenticated route answers 500)
    proxy_token: str = ""
    runner_token: str = ""

    # Hosted LLM (OpenAI-compatible)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    default_model: str = "gpt-4o-mini"

    # CORS
    allowed_origins: str = ""  # comma-separated; empty allows any origin

    # Limits
    request_timeout_ms: int = 30_000
    runner_timeout_ms: int = 60_000
    max_prompt_chars: int = 8000
    max_output_bytes: int = 1_000_000

    # Rate limiting (non-positive disables)
    rate_limit_window_ms: int = 60_000
    rate_limit_max: int = 0

    # Budget estimation (non-positive disables each ceiling)
    token_chars_per_token: float = 4
    max_tokens: int = 0
    max_cost_usd: float = 0.5
    cost_per_1k_tokens_openai: float = 0.0
    cost_per_1k_tokens_codex: float = 0.0
    cost_per_1k_tokens_claude: float = 0.0

    # Local CLI providers
    codex_command: str = "codex"
    codex_args: str = ""  # JSON array or shell-style string
    claude_command: str = "claude"
    claude_args: str = ""

    # Vault agent
    vault_path: str = ""
    vault_max_files: int = 500
    vault_max_content_chars: int = 20_000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    def cost_per_1k_tokens(self, provider: str) -> float:
        return float(getattr(self, f"cost_per_1k_tokens_{provider}", 0.0) or 0.0)


settings = Settings()


def validate_settings(config: Settings | None = None) -> None:
    """Validate settings that would otherwise only fail at request time."""
    from foundry_gateway.gateway.subprocess_backend import parse_args, validate_template

    config = config or settings
    errors: list[str] = []

    for provider in CLI_PROVIDERS:
        try:
            validate_template(parse_args(getattr(config, f"{provider}_args")))
        except ValueError as e:
            errors.append(f"{provider.upper()}_ARGS is invalid: {e}")

    if config.token_chars_per_token <= 0:
        errors.append("TOKEN_CHARS_PER_TOKEN must be positive")

    for name in ("request_timeout_ms", "runner_timeout_ms"):
        if getattr(config, name) <= 0:
            errors.append(f"{name.upper()} must be positive")

    if config.app_env == "production":
        if not config.proxy_token and not config.runner_token:
            errors.append("PROXY_TOKEN or RUNNER_TOKEN must be set in production")
        if "*" in config.origins:
            errors.append("ALLOWED_ORIGINS must not be '*' in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
