"""
Painel C4U — Perfis de acesso por time

Hierarquia (maior → menor prioridade):
  DIRETOR    — time DIREÇÃO    (FkmdhZ9): vê todos os times
  GESTOR     — time GESTÃO     (FkmdnFU): vê os times que gerencia
  SUPERVISOR — time SUPERVISÃO (Fkmdmko): vê o próprio time
  JOGADOR    — sem time de gestão: só o próprio painel

O perfil é sempre recalculado a partir de `teams`; nunca é cacheado.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from gamificacao.core.entities import TeamAccess, UserProfile, Usuario
from gamificacao.core.normalizer import normalize_team_ids

log = logging.getLogger(__name__)

DIRECAO = "FkmdhZ9"
GESTAO = "FkmdnFU"
SUPERVISAO = "Fkmdmko"

MANAGEMENT_TEAM_IDS: dict[str, str] = {
    "GESTAO": GESTAO,
    "SUPERVISAO": SUPERVISAO,
    "DIRECAO": DIRECAO,
}

# primeira correspondência vence
_PRIORIDADE: list[tuple[str, UserProfile]] = [
    (DIRECAO, UserProfile.DIRETOR),
    (GESTAO, UserProfile.GESTOR),
    (SUPERVISAO, UserProfile.SUPERVISOR),
]

ROUTE_LOGIN = "/login"
ROUTE_DASHBOARD = "/dashboard"
ROUTE_TEAM_MANAGEMENT = "/dashboard/team-management"


def determine_user_profile(teams: Any) -> UserProfile:
    team_ids = normalize_team_ids(teams)
    for team_id, profile in _PRIORIDADE:
        if team_id in team_ids:
            return profile
    return UserProfile.JOGADOR


def get_user_own_team_id(teams: Any, profile: UserProfile) -> Optional[str]:
    """Time de gestão do próprio usuário (SUPERVISOR/GESTOR) ou None."""
    own = {UserProfile.SUPERVISOR: SUPERVISAO, UserProfile.GESTOR: GESTAO}.get(profile)
    if own is None:
        return None
    return own if own in normalize_team_ids(teams) else None


def get_accessible_team_ids(teams: Any, profile: UserProfile) -> TeamAccess:
    """
    JOGADOR → nenhum; DIRETOR → todos;
    SUPERVISOR/GESTOR → todos os seus times exceto o próprio time de gestão.
    """
    if profile == UserProfile.JOGADOR:
        return TeamAccess.none()
    if profile == UserProfile.DIRETOR:
        return TeamAccess.all()

    excluded = SUPERVISAO if profile == UserProfile.SUPERVISOR else GESTAO
    managed = [t for t in normalize_team_ids(teams) if t != excluded]
    log.debug("%s: times gerenciados %s", profile.value, managed)
    return TeamAccess.subset(managed)


# ── Sessão ────────────────────────────────────────────────────────────────────

@dataclass
class Sessao:
    usuario: Optional[Usuario] = None


class UserProfileService:
    """Consultas de perfil sobre a sessão corrente. Tudo recalculado a cada chamada."""

    def __init__(self, sessao: Sessao):
        self.sessao = sessao

    def current_profile(self) -> UserProfile:
        user = self.sessao.usuario
        if not user:
            return UserProfile.JOGADOR
        return determine_user_profile(user.teams)

    def can_access_team_management(self) -> bool:
        return self.current_profile() != UserProfile.JOGADOR

    def can_see_all_teams(self) -> bool:
        return self.current_profile() == UserProfile.DIRETOR

    def can_only_see_own_team(self) -> bool:
        return self.current_profile() == UserProfile.SUPERVISOR

    def is_jogador(self) -> bool:
        return self.current_profile() == UserProfile.JOGADOR

    def is_supervisor(self) -> bool:
        return self.current_profile() == UserProfile.SUPERVISOR

    def is_gestor(self) -> bool:
        return self.current_profile() == UserProfile.GESTOR

    def is_diretor(self) -> bool:
        return self.current_profile() == UserProfile.DIRETOR

    def own_team_id(self) -> Optional[str]:
        user = self.sessao.usuario
        if not user:
            return None
        return get_user_own_team_id(user.teams, self.current_profile())

    def accessible_teams(self) -> TeamAccess:
        user = self.sessao.usuario
        if not user:
            return TeamAccess.none()
        return get_accessible_team_ids(user.teams, self.current_profile())


# ── Guards ────────────────────────────────────────────────────────────────────

def dashboard_redirect(sessao: Sessao) -> str:
    """Rota inicial de acordo com o perfil."""
    if not sessao.usuario:
        return ROUTE_LOGIN
    if UserProfileService(sessao).can_access_team_management():
        return ROUTE_TEAM_MANAGEMENT
    return ROUTE_DASHBOARD


def team_management_guard(sessao: Sessao) -> Optional[str]:
    """None libera a rota; caso contrário devolve o redirecionamento."""
    if not sessao.usuario:
        return ROUTE_LOGIN
    if UserProfileService(sessao).can_access_team_management():
        return None
    return ROUTE_DASHBOARD
