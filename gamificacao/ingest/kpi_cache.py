"""
Painel C4U — Cache de KPIs por empresa

Mapa explícito id → resultado, com requisições em voo coalescidas
(id → task pendente). Falha de busca vira "sem dados" para aquele id
e não é guardada, então o próximo carregamento tenta de novo.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from gamificacao.core.entities import CnpjKpiData

log = logging.getLogger(__name__)

KpiFetcher = Callable[[str], Awaitable[Optional[CnpjKpiData]]]


class KpiLookupCache:
    def __init__(
        self,
        fetcher: KpiFetcher,
        ttl: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetcher = fetcher
        self.ttl = ttl                            # 0 = vale pela vida da instância
        self._clock = clock
        self._entries: dict[str, tuple[float, Optional[CnpjKpiData]]] = {}
        self._pending: dict[str, asyncio.Task] = {}
        self._generation = 0
        self.fetches = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, cnpj_id: str) -> bool:
        return self._cached(cnpj_id) is not None

    def _cached(self, cnpj_id: str) -> Optional[tuple[float, Optional[CnpjKpiData]]]:
        entry = self._entries.get(cnpj_id)
        if entry is None:
            return None
        if self.ttl and self._clock() - entry[0] > self.ttl:
            del self._entries[cnpj_id]
            return None
        return entry

    async def get_kpi_data(self, cnpj_id: str) -> Optional[CnpjKpiData]:
        entry = self._cached(cnpj_id)
        if entry is not None:
            return entry[1]

        task = self._pending.get(cnpj_id)
        if task is None:
            task = asyncio.ensure_future(self._fetch(cnpj_id, self._generation))
            self._pending[cnpj_id] = task
        # shield: cancelar um consumidor não derruba a busca dos outros
        return await asyncio.shield(task)

    async def _fetch(self, cnpj_id: str, generation: int) -> Optional[CnpjKpiData]:
        self.fetches += 1
        try:
            data = await self._fetcher(cnpj_id)
        except Exception as e:
            log.warning("KPI %s indisponível: %s", cnpj_id, e)
            return None
        finally:
            if self._pending.get(cnpj_id) is asyncio.current_task():
                del self._pending[cnpj_id]

        if data is not None and data.id != cnpj_id:
            log.error("KPI pedido para %s voltou com id %s, descartado", cnpj_id, data.id)
            return None

        if generation == self._generation:
            self._entries[cnpj_id] = (self._clock(), data)
        return data

    def clear_cache(self) -> None:
        """Só em atualização manual; buscas em voo não repovoam o cache."""
        log.info("Cache de KPI limpo (%d entradas)", len(self._entries))
        self._entries.clear()
        self._pending.clear()
        self._generation += 1
