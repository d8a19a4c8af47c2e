"""Reel Studio Flask application."""

from __future__ import annotations

from typing import Any, Dict, Optional

import click
from flask import Flask, current_app

from .common.db.session import build_engine, init_db, make_session_factory
from .common.services.brand_service import BrandService
from .common.services.gemini_service import GeminiService
from .common.services.kie_video_service import KieVideoService
from .common.services.logging import log_event, set_level
from .common.services.quota_service import QuotaService
from .common.services.storage_service import ObjectStorage
from .common.services.subscription_service import SubscriptionService
from .common.services.timeout_service import TimeoutService
from .common.services.video_callback_service import VideoCallbackService
from .common.services.video_generation_service import VideoGenerationService
from .config import StudioConfig
from .routes import api
from .services import ImageService


def build_components(config: StudioConfig, session_factory, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Wire the services; ``overrides`` replaces any of them by name (tests, alternate providers)."""
    overrides = overrides or {}
    app_config = config.app
    settings_path = str(config.settings_file)

    def pick(name, factory):
        return overrides[name] if name in overrides else factory()

    storage = pick(
        "storage",
        lambda: ObjectStorage(config.storage_dir, app_config.secret_key, url_builder=app_config.storage_url),
    )
    provider = pick("video_provider", lambda: KieVideoService(settings_path))
    prompt_assistant = pick("prompt_assistant", lambda: GeminiService(settings_path))
    quota = pick("quota", lambda: QuotaService(session_factory))

    components = {
        "storage": storage,
        "video_provider": provider,
        "prompt_assistant": prompt_assistant,
        "quota": quota,
    }
    components["image_service"] = pick("image_service", lambda: ImageService(storage, session_factory))
    components["video_service"] = pick(
        "video_service",
        lambda: VideoGenerationService(
            provider=provider,
            storage=storage,
            quota=quota,
            config=app_config,
            prompt_assistant=prompt_assistant,
            session_factory=session_factory,
        ),
    )
    components["callback_service"] = pick(
        "callback_service",
        lambda: VideoCallbackService(
            provider=provider, storage=storage, config=app_config, session_factory=session_factory
        ),
    )
    components["timeout_service"] = pick("timeout_service", lambda: TimeoutService(app_config, session_factory))
    components["subscription_service"] = pick(
        "subscription_service", lambda: SubscriptionService(quota, settings_path, session_factory)
    )
    components["brand_service"] = pick("brand_service", lambda: BrandService(prompt_assistant, session_factory))
    return components


def create_app(
    config: Optional[StudioConfig] = None,
    session_factory=None,
    components: Optional[Dict[str, Any]] = None,
) -> Flask:
    config = config or StudioConfig.load()
    set_level(config.app.log_level)

    if session_factory is None:
        engine = build_engine(config.app.database_url)
        init_db(engine)
        session_factory = make_session_factory(engine)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.app.secret_key
    app.config["STUDIO_CONFIG"] = config
    app.extensions["reelstudio_components"] = build_components(config, session_factory, components)
    app.extensions["reelstudio_session_factory"] = session_factory

    app.register_blueprint(api.api_bp)
    app.cli.add_command(init_db_command)
    app.cli.add_command(check_timeouts_command)

    log_event("info", "app.started", public_base_url=config.app.public_base_url)
    return app


@click.command("init-db")
def init_db_command() -> None:
    """Create the database tables."""
    engine = build_engine(current_app.config["STUDIO_CONFIG"].app.database_url)
    init_db(engine)
    click.echo("Database initialised.")


@click.command("check-timeouts")
def check_timeouts_command() -> None:
    """Fail videos that passed their timeout without a provider callback."""
    result = current_app.extensions["reelstudio_components"]["timeout_service"].sweep()
    click.echo(f"Marked {result['count']} videos as timed out.")


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=False)


if __name__ == "__main__":
    main()
