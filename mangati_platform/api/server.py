from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from mangati_platform import __version__
from mangati_platform.auth.crud import bootstrap_admin_if_needed
from mangati_platform.config import Config, load_config, require_jwt_secret
from mangati_platform.db import init_db, ping

from . import (
    admin_routes,
    auth_routes,
    billing_routes,
    chapter_routes,
    filter_routes,
    reader_routes,
    report_routes,
    series_routes,
)


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


def create_app(cfg: Optional[Config] = None) -> FastAPI:
    cfg = cfg or load_config()
    app = FastAPI(title="Mangati API", version=__version__)
    app.state.cfg = cfg

    # CORS is mainly needed for local development (Vite on :5173 -> API on :8000).
    cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Total-Count", "X-Total-Pages"],
        )

    @app.on_event("startup")
    def _on_startup() -> None:
        # Refuse to serve without a signing key.
        require_jwt_secret(cfg)

        init_db(cfg.DB_DSN)

        boot = bootstrap_admin_if_needed(cfg)
        if boot:
            _debug(f"Bootstrapped initial admin user: username={boot.get('username')} email={boot.get('email')}")

    @app.get("/health")
    def health() -> Dict[str, Any]:
        try:
            ping(cfg.DB_DSN)
        except Exception as e:
            _debug(f"health check failed: {e}")
            raise HTTPException(status_code=503, detail="database_unavailable")
        return {"status": "ok", "version": __version__}

    for module in (
        auth_routes,
        series_routes,
        chapter_routes,
        reader_routes,
        filter_routes,
        billing_routes,
        report_routes,
        admin_routes,
    ):
        app.include_router(module.router)

    return app


app = create_app()
