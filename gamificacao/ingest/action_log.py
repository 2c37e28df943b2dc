"""
Painel C4U — Conector action_log

Duas consultas:
  1. carteira do mês: CNPJs em que o jogador registrou ações + contagem
  2. progresso: últimas 100 ações do jogador → métricas de atividades/macros

Falha do backend vira lista vazia; a mensagem volta junto com a lista
(CnpjListResult.erro) para a interface mostrar (toast).
"""
import calendar
import logging
from datetime import date, datetime
from typing import Union

from gamificacao.core.entities import (
    ActivityMetrics,
    CnpjListItem,
    CnpjListResult,
    MacroMetrics,
    ProgressMetrics,
)
from gamificacao.ingest.funifier_client import FunifierApiError, FunifierClient

log = logging.getLogger(__name__)

COLLECTION = "action_log"
ACTION_LOG_LIMIT = 100

STATUS_PENDENTE = {"pending", "pendente"}
STATUS_EM_EXECUCAO = {"in_progress", "em_execucao", "in-progress"}
STATUS_FINALIZADO = {"completed", "finalizado", "done"}
# macros não reconhecem "in-progress" nem "done"
MACRO_INCOMPLETA = {"in_progress", "em_execucao"}
MACRO_FINALIZADA = {"completed", "finalizado"}


def month_range(month: Union[str, date]) -> tuple[datetime, datetime]:
    """'2024-03' → (2024-03-01 00:00:00, 2024-03-31 23:59:59.999999)"""
    if isinstance(month, str):
        try:
            ref = datetime.strptime(month.strip(), "%Y-%m")
        except ValueError:
            raise ValueError(f"Mês inválido: {month!r} (esperado AAAA-MM)") from None
        year, mon = ref.year, ref.month
    else:
        year, mon = month.year, month.month

    last_day = calendar.monthrange(year, mon)[1]
    return (
        datetime(year, mon, 1),
        datetime(year, mon, last_day, 23, 59, 59, 999999),
    )


def _funifier_date(dt: datetime) -> dict:
    return {"$date": dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"}


def build_cnpj_list_query(player_id: str, month: Union[str, date]) -> list[dict]:
    start, end = month_range(month)
    return [
        {
            "$match": {
                "userId": player_id,
                "time": {"$gte": _funifier_date(start), "$lte": _funifier_date(end)},
            }
        },
        {"$group": {"_id": "$attributes.cnpj", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
    ]


def compute_progress_metrics(actions: list[dict]) -> ProgressMetrics:
    def status(a: dict) -> str:
        return str(a.get("status") or "")

    activity = ActivityMetrics(
        pendentes=sum(1 for a in actions if status(a) in STATUS_PENDENTE),
        em_execucao=sum(1 for a in actions if status(a) in STATUS_EM_EXECUCAO),
        finalizadas=sum(1 for a in actions if status(a) in STATUS_FINALIZADO),
        pontos=sum(float(a.get("points") or 0) for a in actions),
    )

    macros = [
        a for a in actions
        if (a.get("extra") or {}).get("isMacro") or "macro" in str(a.get("action") or "")
    ]
    macro = MacroMetrics(
        pendentes=sum(1 for a in macros if status(a) in STATUS_PENDENTE),
        incompletas=sum(1 for a in macros if status(a) in MACRO_INCOMPLETA),
        finalizadas=sum(1 for a in macros if status(a) in MACRO_FINALIZADA),
    )
    return ProgressMetrics(activity=activity, macro=macro)


class ActionLogConnector:
    def __init__(self, api: FunifierClient):
        self.api = api

    async def get_player_cnpj_list_with_count(
        self, player_id: str, month: Union[str, date]
    ) -> CnpjListResult:
        query = build_cnpj_list_query(player_id, month)
        try:
            rows = await self.api.aggregate(COLLECTION, query)
        except FunifierApiError as e:
            log.error("Carteira de %s (%s) indisponível: %s", player_id, month, e.message)
            return CnpjListResult(erro=e.message)

        if not isinstance(rows, list):
            log.warning("action_log: resposta sem lista para %s (%s)", player_id, month)
            return CnpjListResult(erro="Resposta inválida do servidor de gamificação.")

        items = [item for item in map(CnpjListItem.from_dict, rows) if item]
        if len(items) < len(rows):
            log.debug("action_log: %d linhas sem CNPJ descartadas", len(rows) - len(items))
        log.info("Carteira %s %s: %d empresas", player_id, month, len(items))
        return CnpjListResult(items=items)

    async def get_player_action_log(self, player_id: str) -> list[dict]:
        query = [
            {"$match": {"player": player_id}},
            {"$sort": {"created": -1}},
            {"$limit": ACTION_LOG_LIMIT},
        ]
        try:
            rows = await self.api.aggregate(COLLECTION, query)
        except FunifierApiError as e:
            log.error("action_log de %s indisponível: %s", player_id, e.message)
            return []
        return [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []

    async def get_progress_metrics(self, player_id: str) -> ProgressMetrics:
        return compute_progress_metrics(await self.get_player_action_log(player_id))

    async def get_completed_tasks_count(self, player_id: str) -> int:
        actions = await self.get_player_action_log(player_id)
        return sum(1 for a in actions if str(a.get("status") or "") in STATUS_FINALIZADO)
