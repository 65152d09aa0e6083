"""CSV import/export utilities."""

import csv
import logging
from pathlib import Path

from cuebracket.exceptions import CSVImportError
from cuebracket.models import Player, WinnerDisplayEntry

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"id", "name"}
SKILL_LEVELS = ("Beginner", "Intermediate", "Advanced", "Pro")


def validate_player_row(row: dict, row_num: int) -> dict:
    """Validate a player row from CSV.

    Args:
        row: Dictionary with CSV columns
        row_num: Row number for error messages

    Returns:
        Validated dictionary with cleaned data

    Raises:
        CSVImportError: If validation fails
    """
    errors = []
    for field in sorted(REQUIRED_COLUMNS):
        if not (row.get(field) or "").strip():
            errors.append(f"Missing required field '{field}'")
    if errors:
        raise CSVImportError(f"Row {row_num}: {', '.join(errors)}")

    validated = {
        "id": row["id"].strip(),
        "name": row["name"].strip(),
        "external_id": (row.get("external_id") or "").strip() or None,
        "avatar": (row.get("avatar") or "").strip() or None,
    }

    skill = (row.get("skill") or "").strip().title() or "Beginner"
    if skill not in SKILL_LEVELS:
        # Accept it, the backend may use other labels
        logger.warning("Row %d: unknown skill level '%s'", row_num, skill)
    validated["skill"] = skill

    return validated


def import_players_csv(csv_path: str, skip_duplicates: bool = True) -> list[Player]:
    """Import a tournament roster from a CSV file.

    CSV format:
        id,name,skill,avatar,external_id
        p1,Ana Lopez,Advanced,,

    Args:
        csv_path: Path to CSV file
        skip_duplicates: Skip rows with an id already seen (else fail)

    Returns:
        List of Player objects in file order

    Raises:
        CSVImportError: If file not found or validation fails
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise CSVImportError(f"CSV file not found: {csv_path}")

    players = []
    seen_ids = set()

    with open(csv_file, "r", encoding="utf-8") as f:
        reader = csv.DictReader(f)

        if not REQUIRED_COLUMNS.issubset(set(reader.fieldnames or [])):
            missing = REQUIRED_COLUMNS - set(reader.fieldnames or [])
            raise CSVImportError(f"CSV missing required columns: {sorted(missing)}")

        for row_num, row in enumerate(reader, start=2):  # Row 1 is the header
            validated = validate_player_row(row, row_num)

            if validated["id"] in seen_ids:
                if not skip_duplicates:
                    raise CSVImportError(f"Row {row_num}: Duplicate ID {validated['id']}")
                logger.warning("Row %d: Duplicate ID %s, skipping", row_num, validated["id"])
                continue
            seen_ids.add(validated["id"])

            players.append(Player(**validated))

    logger.info("Validated %d players from %s", len(players), csv_path)
    return players


def export_ranking_csv(entries: list[WinnerDisplayEntry], path: str) -> None:
    """Export published winners to CSV.

    Args:
        entries: Ranking entries, already ordered by rank
        path: Output CSV path
    """
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["Rank", "Player_ID", "Player_Name", "Title", "Round_Won", "Won_At"])
        for entry in entries:
            writer.writerow(
                [
                    entry.rank,
                    entry.player_id,
                    entry.player_name,
                    entry.title,
                    entry.round_won,
                    entry.won_at.isoformat(timespec="seconds"),
                ]
            )
