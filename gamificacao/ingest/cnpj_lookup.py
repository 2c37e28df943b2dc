"""
Painel C4U — Nome limpo da empresa (coleção empid_cnpj__c)

Registro: {"_id": 10010, "cnpj": "...", "empresa": "INCENSE PERFUMARIA"}
Sem empid extraível, empid desconhecido ou erro → mantém a string original.
"""
import logging

from gamificacao.core.normalizer import extract_empid
from gamificacao.ingest.funifier_client import FunifierApiError, FunifierClient

log = logging.getLogger(__name__)

COLLECTION = "empid_cnpj__c"


class CnpjLookup:
    def __init__(self, api: FunifierClient):
        self.api = api

    async def fetch_by_empids(self, empids: list[int]) -> dict[int, str]:
        if not empids:
            return {}
        try:
            rows = await self.api.aggregate(COLLECTION, [{"$match": {"_id": {"$in": empids}}}])
        except FunifierApiError as e:
            log.error("empid_cnpj__c indisponível: %s", e.message)
            return {}
        if not isinstance(rows, list):
            return {}

        nomes = {}
        for row in rows:
            if not isinstance(row, dict) or not row.get("empresa"):
                continue
            try:
                nomes[int(row["_id"])] = str(row["empresa"]).strip()
            except (KeyError, TypeError, ValueError):
                continue
        return nomes

    async def enrich_cnpj_list(self, cnpjs: list[str]) -> dict[str, str]:
        """string bruta → nome da empresa (ou a própria string)."""
        empid_por_cnpj = {c: extract_empid(c) for c in cnpjs}
        unicos = sorted({e for e in empid_por_cnpj.values() if e is not None})

        nomes = await self.fetch_by_empids(unicos)
        log.debug("empid_cnpj__c: %d/%d empids resolvidos", len(nomes), len(unicos))

        return {
            cnpj: nomes.get(empid, cnpj) if empid is not None else cnpj
            for cnpj, empid in empid_por_cnpj.items()
        }
