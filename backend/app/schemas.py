# backend/app/schemas.py
from pydantic import BaseModel
from typing import Any, Optional, List
from datetime import datetime

class KpiOut(BaseModel):
    id: str
    label: str
    current: float
    target: float
    unit: str = ""
    percentage: int
    color: str

class CompanyOut(BaseModel):
    cnpj: str
    cnpjId: Optional[str] = None
    actionCount: int
    deliveryKpi: Optional[KpiOut] = None
    empresa: Optional[str] = None

class CarteiraOut(BaseModel):
    player_id: str
    month: str
    clientes: List[CompanyOut] = []
    erro: Optional[str] = None
    loaded_at: datetime

class PerfilIn(BaseModel):
    teams: Optional[List[Any]] = None

class TeamAccessOut(BaseModel):
    kind: str
    ids: List[str] = []

class PerfilOut(BaseModel):
    profile: str
    own_team_id: Optional[str] = None
    access: TeamAccessOut
    can_access_team_management: bool
    redirect: str

class ActivityOut(BaseModel):
    pendentes: int
    em_execucao: int
    finalizadas: int
    pontos: float

class MacroOut(BaseModel):
    pendentes: int
    incompletas: int
    finalizadas: int

class ProgressoOut(BaseModel):
    player_id: str
    activity: ActivityOut
    macro: MacroOut
