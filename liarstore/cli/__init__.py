"""liarstore.cli: typer application (`liarstore store ...`, `liarstore game ...`)."""
