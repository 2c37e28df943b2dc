"""
Painel C4U — Normalização de dados brutos do Funifier
"""
import math
import re
from typing import Any, Optional

from gamificacao.core.entities import KpiColor

# "RODOPRIMA LOGISTICA LTDA l 0001 [2000|0001-60]" → "2000"
_CNPJ_ID_RE = re.compile(r"\[([^|\[\]]+)\|")
_EMPID_BARE_RE = re.compile(r"^\d{1,8}$")
_EMPID_BRACKET_RE = re.compile(r"\[(\d+)\|")

GREEN_THRESHOLD = 80
YELLOW_THRESHOLD = 50


def extract_cnpj_id(raw: Any) -> Optional[str]:
    """
    Extrai o id entre '[' e '|' da string de CNPJ do action_log.
    Retorna None se a estrutura colchete/pipe não existir ou o id for vazio.
    Nunca levanta exceção.
    """
    if not raw or not isinstance(raw, str):
        return None

    match = _CNPJ_ID_RE.search(raw)
    if not match:
        return None

    cnpj_id = match.group(1).strip()
    return cnpj_id or None


def extract_empid(raw: Any) -> Optional[int]:
    """
    empid numérico da tabela empid_cnpj__c.
    '1748' → 1748 (até 8 dígitos é o próprio empid)
    'INCENSE PERFUMARIA LTDA [10010|0001-76]' → 10010
    """
    if not raw or not isinstance(raw, str):
        return None

    trimmed = raw.strip()
    if _EMPID_BARE_RE.match(trimmed):
        return int(trimmed)

    match = _EMPID_BRACKET_RE.search(trimmed)
    if match:
        return int(match.group(1))
    return None


def normalize_team_ids(teams: Any) -> list[str]:
    """Times podem vir como 'FkmdnFU' ou {'_id': 'FkmdnFU'}; inválidos são descartados."""
    if not teams or not isinstance(teams, (list, tuple)):
        return []

    ids = []
    for team in teams:
        if isinstance(team, str):
            if team:
                ids.append(team)
        elif isinstance(team, dict) and team.get("_id"):
            ids.append(str(team["_id"]))
    return ids


def calculate_kpi_progress(current: float, target: float) -> int:
    if not target or target <= 0:
        return 0
    pct = current / target * 100
    if not math.isfinite(pct):
        return 0
    # meio para cima, como Math.round (round() do Python arredonda para o par)
    return math.floor(pct + 0.5)


def kpi_color(percentage: float) -> KpiColor:
    # faixas: [0,50) vermelho | [50,80) amarelo | [80,∞) verde
    if percentage >= GREEN_THRESHOLD:
        return KpiColor.GREEN
    if percentage >= YELLOW_THRESHOLD:
        return KpiColor.YELLOW
    return KpiColor.RED
