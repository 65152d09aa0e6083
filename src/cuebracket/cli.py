"""Command-line interface for cuebracket."""

import asyncio
import logging
import random

import click

from cuebracket import __version__


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", required=False, help="Path to config YAML file")
@click.option("--db", "db_path", required=False, help="Path to the SQLite database")
@click.option("--verbose", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, config_path: str, db_path: str, verbose: bool):
    """cuebracket - run single-elimination billiards tournaments round by round."""
    from cuebracket.config_loader import ConfigError, load_and_validate_config, validate_config
    from cuebracket.i18n import set_language

    _setup_logging(verbose)
    try:
        cfg = load_and_validate_config(config_path) if config_path else validate_config({})
    except ConfigError as e:
        click.echo(f"[ERROR] Config error: {e}", err=True)
        raise click.Abort()

    if db_path:
        cfg["db_path"] = db_path
    if config_path:
        set_language(cfg["lang"])
    ctx.obj = {"config": cfg}


# ============================================================================
# Helpers
# ============================================================================


def _database(ctx):
    from cuebracket.paths import get_default_db_path
    from cuebracket.storage import DatabaseManager

    cfg = ctx.obj["config"]
    db = DatabaseManager(cfg["db_path"] or str(get_default_db_path()))
    db.create_tables()
    return db.get_session()


def _backend(ctx, session):
    from cuebracket.backend import HttpBackend
    from cuebracket.storage import LocalBackend

    cfg = ctx.obj["config"]
    if cfg["backend"]["mode"] == "http":
        return HttpBackend(
            base_url=cfg["backend"]["base_url"],
            token=cfg["backend"]["token"],
            timeout=cfg["request_timeout"],
        )
    return LocalBackend(session)


def _load_state(session):
    from cuebracket.i18n import get_string
    from cuebracket.storage import TournamentRepository

    repo = TournamentRepository(session)
    current = repo.get_current()
    state = repo.load_snapshot(current.id) if current else None
    if state is None:
        click.echo(f"[ERROR] {get_string('cli.no_tournament')}", err=True)
        raise click.Abort()
    return repo, state


def _run(ctx, command, assume_yes: bool = False):
    """Execute one command against the current tournament and persist it."""
    from cuebracket.auth import Session
    from cuebracket.engine import CANCELLED, TournamentEngine
    from cuebracket.i18n import get_string
    from cuebracket.notifications import ConsoleNotifier

    cfg = ctx.obj["config"]
    session = _database(ctx)
    repo, state = _load_state(session)

    auth = Session(
        token=cfg["backend"]["token"],
        on_sign_out=lambda: click.echo(f"[WARNING] {get_string('cli.session_ended')}", err=True),
    )
    seed = cfg["random_seed"]
    engine = TournamentEngine(
        state,
        _backend(ctx, session),
        notifier=ConsoleNotifier(assume_yes=assume_yes),
        session=auth,
        policy=cfg["policy"],
        rng=random.Random(seed) if seed is not None else random.Random(),
        timeout=cfg["request_timeout"],
        on_change=repo.save_snapshot,
    )
    outcome = asyncio.run(engine.execute(command))
    session.close()

    if outcome.status == CANCELLED:
        click.echo(f"[INFO] {outcome.message}")
        return outcome
    if not outcome.ok:
        raise click.Abort()
    return outcome


def _round_arg(value: str):
    """'pool' (any case) means the staging pool."""
    return None if value is None or value.lower() == "pool" else value


# ============================================================================
# Tournament setup
# ============================================================================


@cli.command()
@click.argument("name")
@click.option("--csv", "csv_path", required=False, help="Path to roster CSV (id,name,skill,avatar,external_id)")
@click.option("--player", "player_names", multiple=True, help="Add a player by name (repeatable)")
@click.pass_context
def init(ctx, name: str, csv_path: str, player_names: tuple):
    """Create a tournament from a roster.

    Example:
        cuebracket init "Friday 8-Ball" --csv data/players.csv
    """
    from cuebracket.exceptions import CSVImportError, CuebracketError
    from cuebracket.i18n import get_string
    from cuebracket.io_csv import import_players_csv
    from cuebracket.models import Player, TournamentState
    from cuebracket.storage import TournamentRepository

    try:
        players = import_players_csv(csv_path) if csv_path else []
    except CSVImportError as e:
        click.echo(f"[ERROR] CSV Import Error: {e}", err=True)
        raise click.Abort()

    taken = {p.id for p in players}
    for index, player_name in enumerate(player_names, start=len(players) + 1):
        player_id = f"p{index}"
        while player_id in taken:
            index += 1
            player_id = f"p{index}"
        taken.add(player_id)
        players.append(Player(id=player_id, name=player_name))

    cfg = ctx.obj["config"]
    session = _database(ctx)
    backend = _backend(ctx, session)
    repo = TournamentRepository(session)

    async def create():
        return await backend.create_tournament(
            name, [{"id": p.id, "name": p.name, "skill": p.skill} for p in players]
        )

    try:
        response = asyncio.run(create())
    except CuebracketError as e:
        click.echo(f"[ERROR] {e}", err=True)
        raise click.Abort()
    if not response.success:
        click.echo(f"[ERROR] {response.message}", err=True)
        raise click.Abort()

    data = response.data or {}
    if cfg["backend"]["mode"] == "http":
        row = repo.create(name)
        tournament_id = str(row.id)
    else:
        tournament_id = str(data["id"])

    for player in players:
        player.external_id = player.external_id or data.get("player_ids", {}).get(player.id)

    state = TournamentState(
        tournament_id=tournament_id,
        name=name,
        players={p.id: p for p in players},
        external_id=str(data.get("id")) if data.get("id") else None,
    )
    repo.save_snapshot(state)
    session.close()
    click.echo(f"[SUCCESS] {get_string('cli.created', name=name, count=len(players))}")


@cli.command()
@click.option("--name", "display_name", required=False, help="Display name of the first round")
@click.pass_context
def start(ctx, display_name: str):
    """Start the tournament with its first round."""
    from cuebracket.commands import StartTournament

    _run(ctx, StartTournament(display_name or ctx.obj["config"]["first_round_name"]))


@cli.command()
@click.pass_context
def show(ctx):
    """Show rounds, matches and the staging pool."""
    from cuebracket.i18n import get_string

    session = _database(ctx)
    _, state = _load_state(session)
    session.close()

    def names(ids):
        return ", ".join(state.player_name(pid) for pid in ids) or "-"

    click.echo(f"\n{state.name} [{state.status.value}]")
    click.echo(f"  {get_string('labels.staging_pool')}: {names(state.staging_pool)}")
    for rnd in state.rounds:
        marker = "*" if rnd.id == state.active_round_id else " "
        frozen = f" ({get_string('labels.frozen')})" if rnd.is_frozen else ""
        click.echo(f"\n{marker} {rnd.id}: {rnd.label}{frozen} [{rnd.status.value}]")
        click.echo(f"    {get_string('labels.unpaired')}: {names(rnd.unpaired)}")
        for match in rnd.matches:
            winner = f" -> {state.player_name(match.winner_id)}" if match.winner_id else ""
            click.echo(
                f"    {match.id}: {state.player_name(match.player1_id)} vs "
                f"{state.player_name(match.player2_id)} [{match.status.value}]{winner}"
            )
        click.echo(f"    {get_string('labels.winners')}: {names(rnd.winners)}")
        click.echo(f"    {get_string('labels.losers')}: {names(rnd.losers)}")


# ============================================================================
# Rounds
# ============================================================================


@cli.command("create-round")
@click.argument("name")
@click.pass_context
def create_round(ctx, name: str):
    """Append a round, e.g. "Semi Final"."""
    from cuebracket.commands import CreateRound

    _run(ctx, CreateRound(name))


@cli.command("rename-round")
@click.argument("round_id")
@click.argument("name")
@click.pass_context
def rename_round(ctx, round_id: str, name: str):
    """Change a round's display name."""
    from cuebracket.commands import RenameRound

    _run(ctx, RenameRound(round_id, name))


@cli.command()
@click.argument("round_id")
@click.pass_context
def freeze(ctx, round_id: str):
    """Freeze a finished round (cannot be undone)."""
    from cuebracket.commands import FreezeRound

    _run(ctx, FreezeRound(round_id))


@cli.command("close-round")
@click.argument("round_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def close_round(ctx, round_id: str, yes: bool):
    """Delete the last round (it must be empty)."""
    from cuebracket.commands import CloseRound

    _run(ctx, CloseRound(round_id), assume_yes=yes)


@cli.command()
@click.argument("player_ids", nargs=-1, required=True)
@click.option("--to", "destination", required=True, help="Destination round id, or 'pool'")
@click.option("--from", "source", default="pool", show_default=True, help="Source round id, or 'pool'")
@click.option(
    "--list",
    "collection",
    type=click.Choice(["players", "winners", "losers"]),
    default="players",
    show_default=True,
    help="Which list of the source round the players come from",
)
@click.pass_context
def move(ctx, player_ids: tuple, destination: str, source: str, collection: str):
    """Move players between the staging pool and rounds.

    Example:
        cuebracket move p1 p2 --from round_1 --list winners --to round_2
    """
    from cuebracket.models import Collection
    from cuebracket.movement import MovePlayers

    _run(
        ctx,
        MovePlayers(
            player_ids=list(player_ids),
            destination_round_id=_round_arg(destination),
            source_round_id=_round_arg(source),
            source=Collection(collection),
        ),
    )


@cli.command()
@click.argument("round_id")
@click.pass_context
def shuffle(ctx, round_id: str):
    """Pair the round's players into matches at random."""
    from cuebracket.commands import ShuffleRound

    _run(ctx, ShuffleRound(round_id))


# ============================================================================
# Matches
# ============================================================================


@cli.command("start-match")
@click.argument("match_id")
@click.pass_context
def start_match(ctx, match_id: str):
    """Mark a pending match as being played."""
    from cuebracket.commands import StartMatch

    _run(ctx, StartMatch(match_id))


@cli.command()
@click.argument("match_id")
@click.argument("player_id")
@click.option("--score1", type=int, required=False, help="Score of the match's first player")
@click.option("--score2", type=int, required=False, help="Score of the match's second player")
@click.pass_context
def winner(ctx, match_id: str, player_id: str, score1: int, score2: int):
    """Record (or change) the winner of a match."""
    from cuebracket.commands import SelectWinner

    _run(ctx, SelectWinner(match_id, player_id, score1, score2))


@cli.command("cancel-match")
@click.argument("match_id")
@click.pass_context
def cancel_match(ctx, match_id: str):
    """Cancel a pending or active match; both players become unpaired."""
    from cuebracket.commands import CancelMatch

    _run(ctx, CancelMatch(match_id))


# ============================================================================
# Results
# ============================================================================


def _parse_pair(value: str, option: str) -> tuple[int, str]:
    position, sep, rest = value.partition("=")
    if not sep or not position.strip().isdigit():
        raise click.BadParameter(f"expected POSITION=VALUE, got '{value}'", param_hint=option)
    return int(position), rest


@cli.command()
@click.option("--title", "titles", multiple=True, help="POSITION=TITLE, e.g. 1=Winner (repeatable)")
@click.option("--rank", "ranks", multiple=True, help="POSITION=NEW_RANK, e.g. 3=1 (repeatable)")
@click.option("--toggle", "toggles", type=int, multiple=True, help="POSITION to hide/show in results")
@click.pass_context
def titles(ctx, titles: tuple, ranks: tuple, toggles: tuple):
    """Edit titles and order of the top winners and save them.

    Positions refer to the current ranking shown by 'cuebracket results --all'.
    """
    from cuebracket.commands import SaveWinnerTitles
    from cuebracket.exceptions import Rejection
    from cuebracket.ranking import RankingEditBuffer

    session = _database(ctx)
    _, state = _load_state(session)
    session.close()

    buffer = RankingEditBuffer.from_projection(
        state.winners_to_display, size=ctx.obj["config"]["ranking_size"]
    )
    try:
        for value in titles:
            position, title = _parse_pair(value, "--title")
            buffer.set_title(position - 1, title)
        for position in toggles:
            buffer.toggle_selected(position - 1)
        for value in ranks:
            position, new_rank = _parse_pair(value, "--rank")
            if not new_rank.strip().isdigit():
                raise click.BadParameter(f"rank must be a number, got '{new_rank}'", param_hint="--rank")
            buffer.move_rank(position - 1, int(new_rank))
    except Rejection as e:
        click.echo(f"[ERROR] {e.message}", err=True)
        raise click.Abort()

    _run(ctx, SaveWinnerTitles(buffer))


@cli.command()
@click.option("--all", "show_all", is_flag=True, help="Include winners hidden from the results")
@click.pass_context
def results(ctx, show_all: bool):
    """Show the ranked list of winners."""
    from cuebracket.i18n import get_string
    from cuebracket.ranking import final_ranking

    session = _database(ctx)
    _, state = _load_state(session)
    session.close()

    entries = state.winners_to_display if show_all else final_ranking(state.winners_to_display)
    if not entries:
        click.echo(f"[INFO] {get_string('rejections.no_winners')}")
        return
    for entry in entries:
        hidden = "" if entry.selected else " (hidden)"
        title = entry.title or get_string("labels.no_title")
        click.echo(f"  {entry.rank}. {entry.player_name} - {title} [{entry.round_won}]{hidden}")


@cli.command("export-results")
@click.option("--out", required=True, help="Output CSV path")
@click.pass_context
def export_results(ctx, out: str):
    """Export the published ranking to CSV."""
    from cuebracket.i18n import get_string
    from cuebracket.io_csv import export_ranking_csv
    from cuebracket.ranking import final_ranking

    session = _database(ctx)
    _, state = _load_state(session)
    session.close()

    export_ranking_csv(final_ranking(state.winners_to_display), out)
    click.echo(f"[SUCCESS] {get_string('cli.exported', path=out)}")


@cli.command("close-tournament")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def close_tournament(ctx, yes: bool):
    """Close the tournament; no further changes are possible."""
    from cuebracket.commands import CloseTournament

    _run(ctx, CloseTournament(), assume_yes=yes)


if __name__ == "__main__":
    cli()
