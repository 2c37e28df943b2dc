"""
Painel C4U — Enriquecimento da carteira com KPI de entregas

action_log (cnpj bruto + nº de ações) → id extraído → KPI via cache → CompanyDisplay

A saída preserva a ordem da entrada. Nenhuma falha sai daqui como exceção:
id não extraído → cnpj_id None; KPI ausente ou com erro → delivery_kpi None.
"""
import asyncio
import logging
from typing import Any, Iterable, Optional

from gamificacao.core.entities import CnpjKpiData, CnpjListItem, CompanyDisplay, KPIData
from gamificacao.core.normalizer import calculate_kpi_progress, extract_cnpj_id, kpi_color
from gamificacao.ingest.kpi_cache import KpiLookupCache

log = logging.getLogger(__name__)

DEFAULT_TARGET = 100.0


def map_to_kpi_data(kpi: CnpjKpiData, target: float = DEFAULT_TARGET) -> KPIData:
    current = kpi.entrega or 0
    percentage = calculate_kpi_progress(current, target)
    return KPIData(
        id="delivery",
        label="Entregas",
        current=current,
        target=target,
        unit="entregas",
        percentage=percentage,
        color=kpi_color(percentage),
    )


def _as_items(raw: Any) -> list[CnpjListItem]:
    if raw is None or isinstance(raw, (str, bytes, dict)):
        return []
    try:
        entries = list(raw)
    except TypeError:
        return []
    items = []
    for entry in entries:
        if isinstance(entry, CnpjListItem):
            items.append(entry)
        else:
            item = CnpjListItem.from_dict(entry)
            if item:
                items.append(item)
    return items


async def enrich_companies_with_kpis(
    items: Optional[Iterable[CnpjListItem]],
    cache: KpiLookupCache,
    target: float = DEFAULT_TARGET,
) -> list[CompanyDisplay]:
    companies = _as_items(items)
    if not companies:
        return []

    ids = [extract_cnpj_id(c.cnpj) for c in companies]
    unicos = list(dict.fromkeys(i for i in ids if i is not None))

    kpis: dict[str, Optional[CnpjKpiData]] = {}
    if unicos:
        results = await asyncio.gather(
            *(cache.get_kpi_data(i) for i in unicos), return_exceptions=True
        )
        for cnpj_id, result in zip(unicos, results):
            if isinstance(result, BaseException):
                log.warning("KPI %s falhou: %s", cnpj_id, result)
                result = None
            kpis[cnpj_id] = result

    enriched = []
    for company, cnpj_id in zip(companies, ids):
        display = CompanyDisplay(cnpj=company.cnpj, action_count=company.action_count, cnpj_id=cnpj_id)
        kpi = kpis.get(cnpj_id) if cnpj_id else None
        if kpi is not None:
            display.delivery_kpi = map_to_kpi_data(kpi, target)
        enriched.append(display)

    com_kpi = sum(1 for e in enriched if e.delivery_kpi)
    log.info(
        "Carteira enriquecida: %d empresas, %d ids válidos, %d com KPI",
        len(enriched), len(unicos), com_kpi,
    )
    return enriched
