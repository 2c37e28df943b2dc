"""
Painel C4U — Modelos de domínio
Carteira de empresas (action_log + cnpj__c) e perfis de acesso por time.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class UserProfile(str, Enum):
    JOGADOR = "JOGADOR"
    SUPERVISOR = "SUPERVISOR"
    GESTOR = "GESTOR"
    DIRETOR = "DIRETOR"


class KpiColor(str, Enum):
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"


@dataclass
class CnpjListItem:
    cnpj: str                                     # string bruta do action_log
    action_count: int = 0

    @classmethod
    def from_dict(cls, row: Any) -> Optional["CnpjListItem"]:
        """
        Aceita {"cnpj", "actionCount"} ou a linha do aggregate {"_id", "count"}.
        Linha sem cnpj string → None (descartada pelo chamador).
        """
        if not isinstance(row, dict):
            return None
        cnpj = row.get("cnpj", row.get("_id"))
        if not isinstance(cnpj, str):
            return None
        raw_count = row.get("actionCount", row.get("count", 0))
        try:
            count = int(raw_count or 0)
        except (TypeError, ValueError, OverflowError):
            count = 0
        return cls(cnpj=cnpj, action_count=max(0, count))


@dataclass
class CnpjListResult:
    """Carteira do mês + mensagem de erro da própria consulta (None = ok)."""
    items: list[CnpjListItem] = field(default_factory=list)
    erro: Optional[str] = None


@dataclass
class CnpjKpiData:
    id: str
    entrega: float = 0.0

    @classmethod
    def from_dict(cls, row: Any) -> Optional["CnpjKpiData"]:
        if not isinstance(row, dict) or not row.get("_id"):
            return None
        try:
            entrega = float(row.get("entrega") or 0)
        except (TypeError, ValueError):
            entrega = 0.0
        if not math.isfinite(entrega):
            entrega = 0.0                         # 1e400, Infinity, "nan"
        return cls(id=str(row["_id"]), entrega=entrega)


@dataclass
class KPIData:
    id: str
    label: str
    current: float
    target: float
    unit: str = ""
    percentage: int = 0
    color: KpiColor = KpiColor.RED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "current": self.current,
            "target": self.target,
            "unit": self.unit,
            "percentage": self.percentage,
            "color": self.color.value,
        }


@dataclass
class CompanyDisplay:
    cnpj: str
    action_count: int
    cnpj_id: Optional[str] = None                 # None quando a extração falha
    delivery_kpi: Optional[KPIData] = None

    def to_dict(self) -> dict:
        return {
            "cnpj": self.cnpj,
            "cnpjId": self.cnpj_id,
            "actionCount": self.action_count,
            "deliveryKpi": self.delivery_kpi.to_dict() if self.delivery_kpi else None,
        }


@dataclass(frozen=True)
class TeamAccess:
    """
    Resultado explícito de acesso a times.
    kind: "none" (sem acesso), "all" (todos os times) ou "subset" (ids).
    """
    kind: str
    ids: tuple[str, ...] = ()

    NONE = "none"
    ALL = "all"
    SUBSET = "subset"

    @classmethod
    def none(cls) -> "TeamAccess":
        return cls(cls.NONE)

    @classmethod
    def all(cls) -> "TeamAccess":
        return cls(cls.ALL)

    @classmethod
    def subset(cls, ids) -> "TeamAccess":
        return cls(cls.SUBSET, tuple(ids))

    def allows(self, team_id: str) -> bool:
        if self.kind == self.ALL:
            return True
        return team_id in self.ids

    def legacy_ids(self) -> list[str]:
        """Lista no formato antigo: [] tanto para 'nenhum' quanto para 'todos'."""
        return list(self.ids)


@dataclass
class Usuario:
    id: str = ""                                  # Funifier usa o email como _id
    email: str = ""
    nome: str = ""
    teams: list[Any] = field(default_factory=list)   # str ou {"_id": ...}

    @property
    def player_id(self) -> str:
        return self.id or self.email


@dataclass
class ActivityMetrics:
    pendentes: int = 0
    em_execucao: int = 0
    finalizadas: int = 0
    pontos: float = 0.0


@dataclass
class MacroMetrics:
    pendentes: int = 0
    incompletas: int = 0
    finalizadas: int = 0


@dataclass
class ProgressMetrics:
    activity: ActivityMetrics = field(default_factory=ActivityMetrics)
    macro: MacroMetrics = field(default_factory=MacroMetrics)


@dataclass
class CarteiraState:
    player_id: str
    month: str                                    # YYYY-MM
    clientes: list[CompanyDisplay] = field(default_factory=list)
    nomes: dict[str, str] = field(default_factory=dict)   # cnpj bruto → empresa
    erro: Optional[str] = None
    loaded_at: datetime = field(default_factory=datetime.now)
