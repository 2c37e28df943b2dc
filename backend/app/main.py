# backend/app/main.py
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from gamificacao.config import Settings, load_settings, setup_logging
from gamificacao.core.entities import Usuario
from gamificacao.core.perfil import (
    Sessao,
    UserProfileService,
    dashboard_redirect,
)
from gamificacao.ingest.action_log import ActionLogConnector, month_range
from gamificacao.ingest.cnpj_lookup import CnpjLookup
from gamificacao.ingest.funifier_client import FunifierClient
from gamificacao.ingest.kpi_cache import KpiLookupCache
from gamificacao.ingest.kpi_connector import KpiConnector
from gamificacao.pipeline.carteira import CarteiraLoader
from .schemas import CarteiraOut, PerfilIn, PerfilOut, ProgressoOut

settings = load_settings()
setup_logging(settings.log_level)
log = logging.getLogger("gamificacao.api")


class Servicos:
    """Cliente Funifier + cache de KPI compartilhados pelo processo."""

    def __init__(self, api: FunifierClient, settings: Settings):
        self.api = api
        self.settings = settings
        self.action_log = ActionLogConnector(api)
        self.lookup = CnpjLookup(api)
        self.cache = KpiLookupCache(KpiConnector(api).fetch, ttl=settings.kpi_cache_ttl)

    def loader(self) -> CarteiraLoader:
        return CarteiraLoader(
            self.action_log,
            self.cache,
            lookup=self.lookup,
            notify=lambda msg: log.info("Aviso ao usuário: %s", msg),
            target=self.settings.kpi_target,
        )


_servicos: Optional[Servicos] = None

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _servicos is not None:
        await _servicos.api.aclose()

app = FastAPI(title="Painel C4U API", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

def get_servicos() -> Servicos:
    global _servicos
    if _servicos is None:
        _servicos = Servicos(FunifierClient.from_settings(settings), settings)
    return _servicos


@app.get("/health")
def health():
    return {"ok": True}

@app.post("/perfil", response_model=PerfilOut)
def perfil(body: PerfilIn):
    sessao = Sessao(usuario=Usuario(teams=body.teams or []))
    service = UserProfileService(sessao)
    access = service.accessible_teams()
    return {
        "profile": service.current_profile().value,
        "own_team_id": service.own_team_id(),
        "access": {"kind": access.kind, "ids": list(access.ids)},
        "can_access_team_management": service.can_access_team_management(),
        "redirect": dashboard_redirect(sessao),
    }

@app.get("/carteira/{player_id}", response_model=CarteiraOut)
async def carteira(
    player_id: str,
    mes: str = Query(..., pattern=r"^\d{4}-\d{2}$"),
    refresh: bool = False,
    servicos: Servicos = Depends(get_servicos),
):
    try:
        month_range(mes)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    loader = servicos.loader()
    state = await (loader.refresh(player_id, mes) if refresh else loader.load(player_id, mes))

    clientes = []
    for c in state.clientes:
        row = c.to_dict()
        row["empresa"] = state.nomes.get(c.cnpj)
        clientes.append(row)

    return {
        "player_id": state.player_id,
        "month": state.month,
        "clientes": clientes,
        "erro": state.erro,
        "loaded_at": state.loaded_at,
    }

@app.get("/progresso/{player_id}", response_model=ProgressoOut)
async def progresso(player_id: str, servicos: Servicos = Depends(get_servicos)):
    metrics = await servicos.action_log.get_progress_metrics(player_id)
    return {"player_id": player_id, **asdict(metrics)}
