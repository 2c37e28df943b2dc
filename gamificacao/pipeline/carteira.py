"""
Painel C4U — Carregamento da carteira do jogador

Vale o último carregamento INICIADO: cada load() recebe uma geração;
se outro load() começou antes deste terminar, o resultado é descartado
e o estado publicado não muda.
"""
import logging
from datetime import date
from typing import Callable, Optional, Union

from gamificacao.core.entities import CarteiraState
from gamificacao.ingest.action_log import ActionLogConnector
from gamificacao.ingest.cnpj_lookup import CnpjLookup
from gamificacao.ingest.kpi_cache import KpiLookupCache
from gamificacao.pipeline.enriquecimento import DEFAULT_TARGET, enrich_companies_with_kpis

log = logging.getLogger(__name__)

MSG_ERRO_CARTEIRA = "Erro ao carregar carteira de empresas"
MSG_ATUALIZANDO = "Atualizando dados..."


class CarteiraLoader:
    def __init__(
        self,
        action_log: ActionLogConnector,
        cache: KpiLookupCache,
        lookup: Optional[CnpjLookup] = None,
        notify: Optional[Callable[[str], None]] = None,
        target: float = DEFAULT_TARGET,
    ):
        self.action_log = action_log
        self.cache = cache
        self.lookup = lookup
        self.notify = notify or (lambda msg: None)
        self.target = target
        self.state: Optional[CarteiraState] = None
        self._generation = 0

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def load(self, player_id: str, month: Union[str, date]) -> Optional[CarteiraState]:
        self._generation += 1
        generation = self._generation
        month_key = month if isinstance(month, str) else month.strftime("%Y-%m")

        result = await self.action_log.get_player_cnpj_list_with_count(player_id, month)
        clientes, erro = result.items, result.erro
        if not self._is_current(generation):
            log.debug("Carteira %s %s descartada (geração %d)", player_id, month_key, generation)
            return None

        nomes = {}
        if self.lookup and clientes:
            nomes = await self.lookup.enrich_cnpj_list([c.cnpj for c in clientes])
            if not self._is_current(generation):
                log.debug("Carteira %s %s descartada (geração %d)", player_id, month_key, generation)
                return None

        enriched = await enrich_companies_with_kpis(clientes, self.cache, self.target)
        if not self._is_current(generation):
            log.debug("Carteira %s %s descartada (geração %d)", player_id, month_key, generation)
            return None

        if erro:
            self.notify(MSG_ERRO_CARTEIRA)

        self.state = CarteiraState(
            player_id=player_id,
            month=month_key,
            clientes=enriched,
            nomes=nomes,
            erro=erro,
        )
        return self.state

    async def refresh(self, player_id: str, month: Union[str, date]) -> Optional[CarteiraState]:
        """Atualização manual: único ponto que invalida o cache de KPI."""
        self.notify(MSG_ATUALIZANDO)
        self.cache.clear_cache()
        return await self.load(player_id, month)
