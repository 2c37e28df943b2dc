import asyncio
import json
from datetime import date, datetime

import httpx
import pytest
from gamificacao.core.entities import CnpjKpiData, CnpjListItem, KpiColor
from gamificacao.ingest.action_log import (
    ActionLogConnector,
    build_cnpj_list_query,
    compute_progress_metrics,
    month_range,
)
from gamificacao.ingest.cnpj_lookup import CnpjLookup
from gamificacao.ingest.funifier_client import FunifierApiError, FunifierClient, error_message
from gamificacao.ingest.kpi_cache import KpiLookupCache
from gamificacao.ingest.kpi_connector import KpiConnector
from gamificacao.pipeline.enriquecimento import enrich_companies_with_kpis


def _client(handler, retries=2):
    return FunifierClient(
        basic_token="BASIC",
        bearer_token="BEARER",
        retries=retries,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


def _run(handler, fn, retries=2):
    async def run():
        async with _client(handler, retries) as api:
            return await fn(api)
    return asyncio.run(run())


# ── Cliente Funifier ──────────────────────────────────────────────────────────

def test_aggregate_usa_basic_auth_e_strict():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[{"_id": "1"}])

    rows = _run(handler, lambda api: api.aggregate("cnpj__c", [{"$match": {"_id": "1"}}]))
    req = seen[0]
    assert rows == [{"_id": "1"}]
    assert req.method == "POST"
    assert req.url.path == "/v3/database/cnpj__c/aggregate"
    assert req.url.params["strict"] == "true"
    assert req.headers["Authorization"] == "Basic BASIC"
    assert json.loads(req.content) == [{"$match": {"_id": "1"}}]


def test_endpoint_de_jogador_usa_bearer():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"teams": ["FkmdnFU"]})

    body = _run(handler, lambda api: api.get("/v3/player/me/status"))
    assert body == {"teams": ["FkmdnFU"]}
    assert seen[0].headers["Authorization"] == "Bearer BEARER"


def test_repete_em_503():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json=[])

    assert _run(handler, lambda api: api.post("/v3/database/x/aggregate", [])) == []
    assert len(calls) == 2


def test_401_nao_repete():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401)

    with pytest.raises(FunifierApiError) as exc:
        _run(handler, lambda api: api.get("/v3/player/me/status"))
    assert exc.value.status == 401
    assert exc.value.message == "Sessão expirada. Faça login novamente."
    assert len(calls) == 1


def test_5xx_esgota_tentativas():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(FunifierApiError) as exc:
        _run(handler, lambda api: api.get("/v3/x"), retries=2)
    assert exc.value.status == 500
    assert len(calls) == 3


@pytest.mark.parametrize("erro", [httpx.ConnectError, httpx.ReadTimeout])
def test_erro_de_transporte_e_timeout_iguais(erro):
    def handler(request):
        raise erro("falhou", request=request)

    with pytest.raises(FunifierApiError) as exc:
        _run(handler, lambda api: api.get("/v3/x"), retries=1)
    assert exc.value.status == 0
    assert exc.value.message == "Erro de conexão. Verifique sua internet."


def test_resposta_nao_json():
    def handler(request):
        return httpx.Response(200, content=b"<html>manutencao</html>")

    with pytest.raises(FunifierApiError):
        _run(handler, lambda api: api.get("/v3/x"))


@pytest.mark.parametrize("erro", [httpx.TooManyRedirects, httpx.DecodingError])
def test_outros_erros_de_requisicao_viram_funifier_api_error(erro):
    calls = []

    def handler(request):
        calls.append(request)
        raise erro("falhou", request=request)

    with pytest.raises(FunifierApiError) as exc:
        _run(handler, lambda api: api.get("/v3/x"))
    assert exc.value.status == 0
    assert len(calls) == 1


def test_mensagens_de_erro():
    assert error_message(403) == "Acesso negado."
    assert error_message(404) == "Recurso não encontrado."
    assert error_message(502) == "Erro no servidor. Tente novamente mais tarde."
    assert error_message(418, "I'm a teapot") == "Erro 418: I'm a teapot"
    assert error_message(418) == "Erro 418"


# ── action_log ────────────────────────────────────────────────────────────────

def test_intervalo_do_mes():
    assert month_range("2024-02") == (datetime(2024, 2, 1), datetime(2024, 2, 29, 23, 59, 59, 999999))
    assert month_range(date(2023, 2, 10))[1].day == 28

def test_mes_invalido():
    with pytest.raises(ValueError):
        month_range("2024-13")
    with pytest.raises(ValueError):
        month_range("marco")

def test_query_da_carteira():
    query = build_cnpj_list_query("joao@empresa.com", "2024-02")
    match = query[0]["$match"]
    assert match["userId"] == "joao@empresa.com"
    assert match["time"]["$gte"] == {"$date": "2024-02-01T00:00:00.000Z"}
    assert match["time"]["$lte"] == {"$date": "2024-02-29T23:59:59.999Z"}
    assert query[1]["$group"] == {"_id": "$attributes.cnpj", "count": {"$sum": 1}}


def test_carteira_descarta_linhas_sem_cnpj():
    def handler(request):
        return httpx.Response(200, json=[
            {"_id": "ACME l 01 [500|0001-99]", "count": 3},
            {"_id": None, "count": 5},
        ])

    result = _run(handler, lambda api: ActionLogConnector(api).get_player_cnpj_list_with_count("p", "2024-03"))
    assert result.items == [CnpjListItem("ACME l 01 [500|0001-99]", 3)]
    assert result.erro is None


def test_carteira_erro_vira_lista_vazia():
    def handler(request):
        return httpx.Response(500)

    result = _run(
        handler, lambda api: ActionLogConnector(api).get_player_cnpj_list_with_count("p", "2024-03"), retries=0
    )
    assert result.items == []
    assert result.erro == "Erro no servidor. Tente novamente mais tarde."


def test_carteira_resposta_nula():
    def handler(request):
        return httpx.Response(200, content=b"null")

    result = _run(handler, lambda api: ActionLogConnector(api).get_player_cnpj_list_with_count("p", "2024-03"))
    assert result.items == []
    assert result.erro == "Resposta inválida do servidor de gamificação."


def test_carteira_redirecionamento_em_loop_vira_erro():
    def handler(request):
        raise httpx.TooManyRedirects("loop", request=request)

    result = _run(handler, lambda api: ActionLogConnector(api).get_player_cnpj_list_with_count("p", "2024-03"))
    assert result.items == []
    assert result.erro == "Erro de conexão. Verifique sua internet."


ACOES = [
    {"status": "pending", "points": 5},
    {"status": "pendente", "action": "macro_fechamento"},
    {"status": "in-progress", "points": 2},
    {"status": "em_execucao", "extra": {"isMacro": True}},
    {"status": "done", "points": 10, "action": "macro_folha"},
    {"status": "finalizado", "points": None},
    {"status": "completed", "points": 3},
    {"action": "sem status"},
]

def test_metricas_de_progresso():
    m = compute_progress_metrics(ACOES)
    assert (m.activity.pendentes, m.activity.em_execucao, m.activity.finalizadas) == (2, 2, 3)
    assert m.activity.pontos == 20
    # "done" não conta como macro finalizada
    assert (m.macro.pendentes, m.macro.incompletas, m.macro.finalizadas) == (1, 1, 0)


def test_progresso_e_tarefas_via_api():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=ACOES)

    async def fn(api):
        connector = ActionLogConnector(api)
        return (
            await connector.get_progress_metrics("p"),
            await connector.get_completed_tasks_count("p"),
        )

    metrics, finalizadas = _run(handler, fn)
    assert metrics.activity.finalizadas == finalizadas == 3
    assert seen[0] == [{"$match": {"player": "p"}}, {"$sort": {"created": -1}}, {"$limit": 100}]


# ── cnpj__c ───────────────────────────────────────────────────────────────────

def test_kpi_encontrado():
    def handler(request):
        body = json.loads(request.content)
        assert body == [{"$match": {"_id": "2000"}}, {"$limit": 1}]
        return httpx.Response(200, json=[{"_id": "2000", "entrega": 89}])

    assert _run(handler, lambda api: KpiConnector(api).fetch("2000")) == CnpjKpiData("2000", 89)


@pytest.mark.parametrize("payload", [[], [{"_id": "9999", "entrega": 10}], {"erro": True}, None])
def test_kpi_sem_dados(payload):
    def handler(request):
        return httpx.Response(200, content=json.dumps(payload).encode())

    assert _run(handler, lambda api: KpiConnector(api).fetch("2000")) is None


def test_kpi_erro_propaga():
    def handler(request):
        return httpx.Response(404)

    with pytest.raises(FunifierApiError):
        _run(handler, lambda api: KpiConnector(api).fetch("2000"))


def test_pipeline_completo_via_http():
    entregas = {"500": 90, "600": 65}

    def handler(request):
        cnpj_id = json.loads(request.content)[0]["$match"]["_id"]
        if cnpj_id == "700":
            return httpx.Response(503)
        if cnpj_id in entregas:
            return httpx.Response(200, json=[{"_id": cnpj_id, "entrega": entregas[cnpj_id]}])
        return httpx.Response(200, json=[])

    items = [
        CnpjListItem("ACME l 01 [500|0001-99]", 3),
        CnpjListItem("BETA l 02 [600|0001-10]", 1),
        CnpjListItem("GAMA l 03 [700|0001-11]", 2),
        CnpjListItem("DELTA l 04 [800|0001-12]", 5),
        CnpjListItem("SEM COLCHETES", 4),
    ]

    async def fn(api):
        cache = KpiLookupCache(KpiConnector(api).fetch)
        return await enrich_companies_with_kpis(items, cache)

    result = _run(handler, fn, retries=1)
    assert [r.cnpj for r in result] == [i.cnpj for i in items]
    assert result[0].delivery_kpi.color is KpiColor.GREEN
    assert result[1].delivery_kpi.color is KpiColor.YELLOW
    assert result[2].delivery_kpi is None
    assert result[3].delivery_kpi is None
    assert result[4].cnpj_id is None


def test_entrega_infinita_nao_derruba_a_carteira():
    def handler(request):
        cnpj_id = json.loads(request.content)[0]["$match"]["_id"]
        if cnpj_id == "500":
            return httpx.Response(200, content=b'[{"_id": "500", "entrega": 1e400}]')
        return httpx.Response(200, content=b'[{"_id": "600", "entrega": NaN}]')

    items = [CnpjListItem("ACME l 01 [500|0001-99]", 3), CnpjListItem("BETA l 02 [600|0001-10]", 1)]

    async def fn(api):
        cache = KpiLookupCache(KpiConnector(api).fetch)
        return await enrich_companies_with_kpis(items, cache)

    acme, beta = _run(handler, fn)
    assert acme.delivery_kpi.current == 0
    assert acme.delivery_kpi.percentage == 0
    assert acme.delivery_kpi.color is KpiColor.RED
    assert beta.delivery_kpi.percentage == 0


# ── empid_cnpj__c ─────────────────────────────────────────────────────────────

def test_nomes_das_empresas():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=[{"_id": 10010, "empresa": " INCENSE PERFUMARIA "}])

    cnpjs = ["INCENSE PERFUMARIA E COSMETICOS LTDA. EPP [10010|0001-76]", "1748", "SEM ID"]
    nomes = _run(handler, lambda api: CnpjLookup(api).enrich_cnpj_list(cnpjs))
    assert nomes == {cnpjs[0]: "INCENSE PERFUMARIA", "1748": "1748", "SEM ID": "SEM ID"}
    assert seen[0] == [{"$match": {"_id": {"$in": [1748, 10010]}}}]


def test_nomes_sem_empid_nao_consulta():
    def handler(request):
        raise AssertionError("não deveria consultar")

    nomes = _run(handler, lambda api: CnpjLookup(api).enrich_cnpj_list(["SEM ID"]))
    assert nomes == {"SEM ID": "SEM ID"}


def test_nomes_erro_mantem_original():
    def handler(request):
        return httpx.Response(500)

    nomes = _run(handler, lambda api: CnpjLookup(api).enrich_cnpj_list(["1748"]), retries=0)
    assert nomes == {"1748": "1748"}
