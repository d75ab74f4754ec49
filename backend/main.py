import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from minimerge import MiniBase
from minimerge.database import DatabaseEngine
from minimerge.session import Session
from minimerge.generator import SchemaGenerator

import models  # registers the clinic models
from settings import Settings, settings
from endpoints.owners_endpoints import router as owners_router
from endpoints.pets_endpoints import router as pets_router
from endpoints.vets_endpoints import router as vets_router
from endpoints.visits_endpoints import router as visits_router


def create_app(app_settings: Settings = None) -> FastAPI:
    """Build the clinic API. Run with `uvicorn main:create_app --factory`."""
    app_settings = app_settings or settings
    logging.basicConfig(level=app_settings.log_level)

    app = FastAPI(title="MiniMerge clinic")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    engine = DatabaseEngine(app_settings.db_path, foreign_keys=app_settings.foreign_keys)
    SchemaGenerator().create_all(engine, MiniBase._registry, drop_first=False)
    app.state.session = Session(engine)

    app.include_router(owners_router)
    app.include_router(pets_router)
    app.include_router(vets_router)
    app.include_router(visits_router)

    @app.get("/")
    def root():
        return {"message": "MiniMerge clinic API", "models": sorted(c.__name__ for c in MiniBase._registry)}

    return app
