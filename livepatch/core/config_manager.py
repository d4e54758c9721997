import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, List
from dataclasses import dataclass, field, fields

ENV_PREFIX = "LIVEPATCH_"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


@dataclass
class LivePatchConfig:
    project_root: str = "."
    served_subdir: str = "src"
    assets_public_subdir: str = "public/assets"
    preview_host: str = "localhost"
    preview_http_port: int = 5173
    preview_ws_port: int = 5174
    preview_url: str = ""
    request_timeout: float = 10.0  # seconds
    send_timeout: float = 5.0  # seconds, per observer
    locator_map_path: str = ""
    watch_external_changes: bool = False
    enable_metrics: bool = True
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def served_root(self) -> Path:
        return Path(self.project_root) / self.served_subdir

    @property
    def assets_dir(self) -> Path:
        return Path(self.project_root) / self.assets_public_subdir

    @property
    def runner_url(self) -> str:
        if self.preview_url:
            return self.preview_url.rstrip("/")
        return f"http://{self.preview_host}:{self.preview_http_port}"


def _coerce(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


class ConfigManager:
    def __init__(self, config_path: str = "livepatch.json", environ: Dict[str, str] = None):
        self.config_path = Path(config_path)
        self.environ = os.environ if environ is None else environ
        self.config = self._load_config()

    def _load_config(self) -> LivePatchConfig:
        """Load configuration from file or defaults, then apply env overrides"""
        if self.config_path.exists():
            with open(self.config_path) as f:
                config = LivePatchConfig(**json.load(f))
        else:
            config = LivePatchConfig()
        self._apply_env_overrides(config)
        return config

    def _apply_env_overrides(self, config: LivePatchConfig):
        for f in fields(config):
            raw = self.environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            try:
                setattr(config, f.name, _coerce(raw, getattr(config, f.name)))
            except ValueError:
                logger.warning(f"Ignoring invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}")

    def save_config(self):
        """Save current configuration to file"""
        config_dict = {f.name: getattr(self.config, f.name) for f in fields(self.config)}
        with open(self.config_path, 'w') as f:
            json.dump(config_dict, f, indent=2)

    def get(self, key: str) -> Any:
        """Get configuration value"""
        return getattr(self.config, key)

    def update(self, key: str, value: Any):
        """Update configuration value"""
        if key in {f.name for f in fields(self.config)}:
            setattr(self.config, key, value)
            self.save_config()
        else:
            raise KeyError(f"Unknown configuration key: {key}")


def configure_logging(level: str = "INFO"):
    """Configure root logging once for an entry point"""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
