"""
Painel C4U — CLI
Uso:
  python -m gamificacao.cli carteira --player joao@empresa.com --mes 2024-03
  python -m gamificacao.cli carteira --player joao@empresa.com --mes 2024-03 --refresh
  python -m gamificacao.cli progresso --player joao@empresa.com
  python -m gamificacao.cli perfil FkmdnFU Fk123
  python -m gamificacao.cli extrair "ACME l 01 [500|0001-99]"
"""
import asyncio
import logging
import sys
from datetime import date

import click
from rich.console import Console
from rich.table import Table

from gamificacao.config import load_settings, setup_logging

settings = load_settings()
setup_logging(settings.log_level)
log = logging.getLogger("gamificacao")
console = Console()


def _validar_mes(ctx, param, value):
    from gamificacao.ingest.action_log import month_range

    try:
        month_range(value)
    except ValueError as e:
        raise click.BadParameter(str(e))
    return value


@click.group()
def cli():
    """Painel C4U — carteira de empresas, KPIs de entrega e perfis de acesso."""
    pass


async def _carregar_carteira(player, mes, refresh, nomes):
    from gamificacao.ingest.action_log import ActionLogConnector
    from gamificacao.ingest.cnpj_lookup import CnpjLookup
    from gamificacao.ingest.funifier_client import FunifierClient
    from gamificacao.ingest.kpi_cache import KpiLookupCache
    from gamificacao.ingest.kpi_connector import KpiConnector
    from gamificacao.pipeline.carteira import CarteiraLoader

    async with FunifierClient.from_settings(settings) as api:
        cache = KpiLookupCache(KpiConnector(api).fetch, ttl=settings.kpi_cache_ttl)
        loader = CarteiraLoader(
            ActionLogConnector(api),
            cache,
            lookup=CnpjLookup(api) if nomes else None,
            notify=lambda msg: console.print(f"[yellow]{msg}[/yellow]"),
            target=settings.kpi_target,
        )
        if refresh:
            return await loader.refresh(player, mes)
        return await loader.load(player, mes)


@cli.command()
@click.option("--player", required=True, help="Id do jogador (email no Funifier)")
@click.option("--mes", default=lambda: date.today().strftime("%Y-%m"),
              callback=_validar_mes, show_default="mês atual", help="Mês AAAA-MM")
@click.option("--refresh", is_flag=True, help="Descarta o cache de KPI antes de carregar")
@click.option("--nomes/--sem-nomes", default=True, help="Resolve o nome limpo da empresa")
def carteira(player, mes, refresh, nomes):
    """Carteira do mês com KPI de entregas por empresa."""
    log.info("Carregando carteira de %s (%s)%s", player, mes, " com refresh" if refresh else "")
    state = asyncio.run(_carregar_carteira(player, mes, refresh, nomes))
    if state is None:
        return

    if not state.clientes:
        console.print(f"Nenhuma empresa na carteira de {player} em {mes}.")
        return

    table = Table(title=f"Carteira {player} — {state.month}")
    table.add_column("Empresa")
    table.add_column("ID", justify="right")
    table.add_column("Ações", justify="right")
    table.add_column("Entregas", justify="right")

    for c in state.clientes:
        nome = state.nomes.get(c.cnpj, c.cnpj)
        if c.delivery_kpi:
            k = c.delivery_kpi
            cor = k.color.value
            entregas = f"[{cor}]{k.current:g}/{k.target:g} ({k.percentage}%)[/{cor}]"
        else:
            entregas = "—"
        table.add_row(nome, c.cnpj_id or "—", str(c.action_count), entregas)

    console.print(table)


@cli.command()
@click.option("--player", required=True, help="Id do jogador (email no Funifier)")
def progresso(player):
    """Métricas de atividades e macros do jogador."""
    from gamificacao.ingest.action_log import ActionLogConnector
    from gamificacao.ingest.funifier_client import FunifierClient

    async def _run():
        async with FunifierClient.from_settings(settings) as api:
            return await ActionLogConnector(api).get_progress_metrics(player)

    m = asyncio.run(_run())
    click.echo(f"\nATIVIDADES  pendentes={m.activity.pendentes}  em execução={m.activity.em_execucao}"
               f"  finalizadas={m.activity.finalizadas}  pontos={m.activity.pontos:g}")
    click.echo(f"MACROS      pendentes={m.macro.pendentes}  incompletas={m.macro.incompletas}"
               f"  finalizadas={m.macro.finalizadas}")


@cli.command()
@click.argument("teams", nargs=-1)
def perfil(teams):
    """Resolve o perfil de acesso a partir dos ids de time."""
    from gamificacao.core.entities import TeamAccess
    from gamificacao.core.perfil import (
        determine_user_profile,
        get_accessible_team_ids,
        get_user_own_team_id,
    )

    profile = determine_user_profile(list(teams))
    acesso = get_accessible_team_ids(list(teams), profile)
    proprio = get_user_own_team_id(list(teams), profile)

    click.echo(f"Perfil:        {profile.value}")
    click.echo(f"Time próprio:  {proprio or '—'}")
    if acesso.kind == TeamAccess.ALL:
        click.echo("Acesso:        todos os times")
    elif acesso.kind == TeamAccess.NONE:
        click.echo("Acesso:        nenhum time")
    else:
        click.echo(f"Acesso:        {', '.join(acesso.ids) or '(nenhum time gerenciado)'}")


@cli.command()
@click.argument("texto")
def extrair(texto):
    """Extrai o id da empresa da string de CNPJ do action_log."""
    from gamificacao.core.normalizer import extract_cnpj_id

    cnpj_id = extract_cnpj_id(texto)
    if cnpj_id is None:
        click.echo("❌ Formato não reconhecido.", err=True)
        sys.exit(1)
    click.echo(cnpj_id)


if __name__ == "__main__":
    cli()
