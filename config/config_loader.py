"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: float
    max_tokens: int
    input_price_per_mtok: float = 0.0
    output_price_per_mtok: float = 0.0
    base_url: str | None = None
    context_chars: int | None = None


@dataclass
class PromptsConfig:
    system: str
    modes: dict[str, dict[str, str]] = field(default_factory=dict)
    personas: dict[str, str] = field(default_factory=dict)


@dataclass
class EngineConfig:
    global_timeout_sec: float = 13.0
    quorum: int = 3
    max_in_flight: int = 8
    max_retries: int = 2
    backoff_base_sec: float = 0.5
    backoff_max_sec: float = 4.0
    flag_threshold: float = 0.04
    cost_cap_dollars: float | None = 1.0
    critique_style: str = "balanced"
    max_agents: int = 6


@dataclass
class InboxConfig:
    inbox_dir: Path = Path("./inbox")
    archive_dir: Path = Path("./inbox/archive")


@dataclass
class DefaultsConfig:
    mode: str
    output_dir: Path
    default_panel: list[str] = field(default_factory=list)
    full_panel: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    engine: EngineConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    inbox: InboxConfig = field(default_factory=InboxConfig)
    available_providers: set[str] = field(default_factory=set)


def _load_engine(raw: dict) -> EngineConfig:
    base = EngineConfig()
    cap = raw.get("cost_cap_dollars", base.cost_cap_dollars)
    return EngineConfig(
        global_timeout_sec=float(raw.get("global_timeout_sec", base.global_timeout_sec)),
        quorum=int(raw.get("quorum", base.quorum)),
        max_in_flight=int(raw.get("max_in_flight", base.max_in_flight)),
        max_retries=int(raw.get("max_retries", base.max_retries)),
        backoff_base_sec=float(raw.get("backoff_base_sec", base.backoff_base_sec)),
        backoff_max_sec=float(raw.get("backoff_max_sec", base.backoff_max_sec)),
        flag_threshold=float(raw.get("flag_threshold", base.flag_threshold)),
        cost_cap_dollars=None if cap is None else float(cap),
        critique_style=str(raw.get("critique_style", base.critique_style)),
        max_agents=int(raw.get("max_agents", base.max_agents)),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs missing API keys but does not raise; callers check
    available_providers count.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        mode=str(defaults_raw.get("mode", "round_table")),
        output_dir=Path(defaults_raw["output_dir"]),
        default_panel=list(defaults_raw["default_panel"]),
        full_panel=list(defaults_raw.get("full_panel", defaults_raw["default_panel"])),
    )

    engine = _load_engine(raw.get("engine") or {})

    inbox_raw = raw.get("inbox") or {}
    inbox = InboxConfig(
        inbox_dir=Path(inbox_raw.get("inbox_dir", "./inbox")),
        archive_dir=Path(inbox_raw.get("archive_dir", "./inbox/archive")),
    )

    prompts_raw = raw["prompts"]
    personas_raw = raw.get("personas") or {}
    prompts = PromptsConfig(
        system=prompts_raw["system"],
        modes={
            mode: {phase: str(text) for phase, text in templates.items()}
            for mode, templates in prompts_raw.items()
            if mode != "system"
        },
        personas={k: str(v) for k, v in personas_raw.items()},
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        pricing = model_raw.get("pricing") or {}
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=float(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            input_price_per_mtok=float(pricing.get("input_per_mtok", 0.0)),
            output_price_per_mtok=float(pricing.get("output_per_mtok", 0.0)),
            base_url=model_raw.get("base_url"),
            context_chars=int(model_raw["context_chars"]) if model_raw.get("context_chars") else None,
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        engine=engine,
        models=models,
        prompts=prompts,
        inbox=inbox,
        available_providers=available_providers,
    )
