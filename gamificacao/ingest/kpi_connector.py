"""
Painel C4U — Conector KPI de entregas (coleção cnpj__c)

Registro por empresa: {"_id": "2000", "entrega": 89}
"""
import logging
from typing import Optional

from gamificacao.core.entities import CnpjKpiData
from gamificacao.ingest.funifier_client import FunifierClient

log = logging.getLogger(__name__)

COLLECTION = "cnpj__c"


class KpiConnector:
    def __init__(self, api: FunifierClient):
        self.api = api

    async def fetch(self, cnpj_id: str) -> Optional[CnpjKpiData]:
        """
        KPI de uma empresa pelo id normalizado. None = sem dados.
        Erros de transporte propagam (FunifierApiError); quem trata é o cache.
        """
        rows = await self.api.aggregate(
            COLLECTION,
            [{"$match": {"_id": cnpj_id}}, {"$limit": 1}],
        )
        if not isinstance(rows, list):
            log.warning("cnpj__c: resposta inesperada para %s: %r", cnpj_id, type(rows).__name__)
            return None

        for row in rows:
            kpi = CnpjKpiData.from_dict(row)
            if kpi and kpi.id == cnpj_id:
                return kpi

        log.debug("cnpj__c: sem KPI para %s", cnpj_id)
        return None
