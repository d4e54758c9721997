import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from livepatch.core.config_manager import ConfigManager, LivePatchConfig, configure_logging
from livepatch.interface.preview_client import PreviewClient
from livepatch.interface.routes import StudioServices, router
from livepatch.interface.ui_manager import UIConfig, UIManager
from livepatch.locator.selection_resolver import SelectionResolver

logger = logging.getLogger(__name__)


def create_app(config: Optional[LivePatchConfig] = None,
               preview: Optional[PreviewClient] = None,
               resolver: Optional[SelectionResolver] = None) -> FastAPI:
    """Build the editing surface application"""
    config = config or ConfigManager().config
    ui_manager = UIManager(UIConfig(enable_metrics=config.enable_metrics, cors_origins=config.cors_origins))

    if resolver is None:
        resolver = SelectionResolver()
        if config.locator_map_path:
            resolver.load_map(config.locator_map_path)

    ui_manager.app.include_router(router, prefix="/api")
    ui_manager.register_routes()
    ui_manager.app.state.services = StudioServices(
        config=config,
        ui_manager=ui_manager,
        resolver=resolver,
        preview=preview or PreviewClient(config.runner_url, timeout=config.request_timeout),
    )
    return ui_manager.app


def build_default_app() -> FastAPI:
    config = ConfigManager().config
    configure_logging(config.log_level)
    logger.info(f"Editing surface targets preview runner at {config.runner_url}")
    return create_app(config)


def run(host: str = "localhost", port: int = 3000):
    """Serve the editing surface with uvicorn"""
    uvicorn.run("livepatch.main:build_default_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    run()
