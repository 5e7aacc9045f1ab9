"""CLI commands for inspecting slug configuration and managing sluggable records."""

from __future__ import annotations

import copy
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from pydantic import ValidationError

from .configuration import SlugConfig, SlugConfigurationResolver
from .errors import SlugConfigurationError, SluggableError
from .mapping.schema import FieldMapping, FieldType, Record, SchemaRegistry, SlugStyle
from .storage.store import RecordStore
from .utils.slug import DEFAULT_SEPARATOR, camelize, truncate, urlize

APP_HELP = "Sluggable CLI entry point."
DEFAULT_CONFIG_NAME = "sluggable.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "paths": {
        "data": "data",
        "db_path": "data/sluggable.sqlite",
        "cache": "data/cache",
    },
    "cache": {
        "enabled": False,
    },
    "schemas": [
        {
            "name": "article",
            "fields": [
                {"name": "title", "type": "string", "length": 128},
                {"name": "code", "type": "string", "length": 16},
                {"name": "slug", "type": "string", "length": 64},
            ],
            "sluggable": ["title", "code"],
            "slugs": {
                "slug": {"separator": "-", "style": "none", "updatable": True, "unique": True},
            },
        }
    ],
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def _write_config(config_path: Path, config_data: Dict[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config_data, handle, sort_keys=False)


app = typer.Typer(help=APP_HELP)


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        help="Logging level for sluggable diagnostics (DEBUG, INFO, WARNING, ...).",
    ),
) -> None:
    """Configure logging before running a command."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level: {log_level}")
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk and return it as a dictionary."""
    if not config_path.exists():
        raise typer.BadParameter(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        typer.echo(f"Failed to parse config: {error}")
        raise typer.Exit(code=1) from error

    if not isinstance(data, dict):
        typer.echo("Configuration must be a mapping at the top level.")
        raise typer.Exit(code=1)

    return data


def _resolve_paths(config: Dict[str, Any], config_path: Path) -> Dict[str, Any]:
    """Return a copy of ``config`` whose relative paths are anchored at the config file."""
    resolved = copy.deepcopy(config)
    paths = resolved.setdefault("paths", {}) or {}
    for key in ("data", "db_path", "cache"):
        value = paths.get(key)
        if isinstance(value, str) and value.strip():
            candidate = Path(value.strip())
            if not candidate.is_absolute():
                candidate = (config_path.parent / candidate).resolve()
            paths[key] = candidate.as_posix()
    resolved["paths"] = paths
    return resolved


def _load_registry(config: Dict[str, Any]) -> SchemaRegistry:
    try:
        return SchemaRegistry.from_config(config)
    except (ValidationError, ValueError) as error:
        typer.echo(f"Invalid schema declarations: {error}")
        raise typer.Exit(code=1) from error


def _open_store(config_path: Path) -> RecordStore:
    config_data = _resolve_paths(load_config(config_path), config_path)
    registry = _load_registry(config_data)
    return RecordStore.from_config(config_data, registry=registry)


def _coerce(mapping: FieldMapping, raw: str) -> Any:
    if mapping.type == FieldType.INTEGER:
        return int(raw)
    if mapping.type == FieldType.FLOAT:
        return float(raw)
    if mapping.type == FieldType.BOOLEAN:
        return raw.strip().lower() in _TRUE_VALUES
    return raw


def _parse_assignments(assignments: List[str], mappings: Dict[str, FieldMapping]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for item in assignments:
        name, separator, raw = item.partition("=")
        name = name.strip()
        if not separator or not name:
            raise typer.BadParameter(f"Expected FIELD=VALUE, got '{item}'")
        mapping = mappings.get(name)
        if mapping is None:
            raise typer.BadParameter(f"Unknown field '{name}'")
        try:
            values[name] = _coerce(mapping, raw)
        except ValueError as error:
            raise typer.BadParameter(f"Invalid value for '{name}': {raw}") from error
    return values


def _render_config(config: SlugConfig) -> None:
    typer.echo(f"{config.record_type}:")
    typer.echo(f"  slug field: {config.slug_field} (max {config.max_length})")
    typer.echo(f"  sources: {', '.join(config.source_fields)}")
    typer.echo(
        f"  separator: '{config.separator}' | style: {config.style.value} | "
        f"updatable: {config.updatable} | unique: {config.unique}"
    )
    if config.unique_constraint:
        typer.echo("  slug column is unique at schema level; batched inserts are rejected")


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path of the configuration file to create.",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a starter configuration with an example sluggable schema."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    _write_config(config_path, _copy_config_template())
    typer.echo(f"Wrote configuration at {config_path}.")


@app.command("urlize")
def urlize_command(
    text: str = typer.Argument(..., help="Text to turn into a slug."),
    separator: str = typer.Option(DEFAULT_SEPARATOR, "--separator", "-s", help="Token separator."),
    style: SlugStyle = typer.Option(SlugStyle.NONE, "--style", help="Casing style applied to the slug."),
    max_length: Optional[int] = typer.Option(None, "--max-length", min=1, help="Hard cut after N characters."),
) -> None:
    """Print the slug built from TEXT."""
    slug = urlize(text, separator)
    if style is SlugStyle.CAMEL:
        slug = camelize(slug, separator)
    if max_length is not None:
        slug = truncate(slug, max_length)
    if not slug:
        typer.echo("Text does not contain any sluggable characters.")
        raise typer.Exit(code=1)
    typer.echo(slug)


@app.command()
def inspect(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the sluggable configuration file.",
    ),
) -> None:
    """Validate schema declarations and show the resolved slug configuration."""
    config_path = Path(config)
    config_data = load_config(config_path)
    registry = _load_registry(config_data)

    resolver = SlugConfigurationResolver(registry)
    failures = 0
    for schema in registry.concrete():
        try:
            resolved = resolver.resolve(schema.name)
        except SlugConfigurationError as error:
            failures += 1
            typer.echo(f"{schema.name}: error :: {error}")
            continue
        if resolved is None:
            typer.echo(f"{schema.name}: no slug configured")
        else:
            _render_config(resolved)
    if failures:
        raise typer.Exit(code=1)


@app.command()
def insert(
    record_type: str = typer.Argument(..., help="Record type to create."),
    assignment: List[str] = typer.Option(
        [],
        "--set",
        help="Field assignment in FIELD=VALUE form. Repeat for multiple fields.",
    ),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the sluggable configuration file.",
    ),
) -> None:
    """Insert a record and print its generated slug."""
    with _open_store(Path(config)) as store:
        if record_type not in store.registry:
            raise typer.BadParameter(f"Unknown record type '{record_type}'")
        values = _parse_assignments(assignment, store.registry.fields(record_type))
        record = Record(type=record_type, values=values)
        session = store.session()
        try:
            session.persist(record)
            session.flush()
        except (SluggableError, sqlite3.IntegrityError) as error:
            typer.echo(f"Failed to insert {record_type}: {error}")
            raise typer.Exit(code=1) from error
        _echo_record(store, record)


@app.command()
def update(
    record_type: str = typer.Argument(..., help="Record type to update."),
    identifier: int = typer.Argument(..., help="Identifier of the record."),
    assignment: List[str] = typer.Option(
        [],
        "--set",
        help="Field assignment in FIELD=VALUE form. Repeat for multiple fields.",
    ),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the sluggable configuration file.",
    ),
) -> None:
    """Change fields of a stored record, regenerating its slug when needed."""
    with _open_store(Path(config)) as store:
        if record_type not in store.registry:
            raise typer.BadParameter(f"Unknown record type '{record_type}'")
        values = _parse_assignments(assignment, store.registry.fields(record_type))
        session = store.session()
        record = session.find(record_type, identifier)
        if record is None:
            typer.echo(f"No {record_type} with identifier {identifier}.")
            raise typer.Exit(code=1)
        record.values.update(values)
        try:
            session.flush()
        except (SluggableError, sqlite3.IntegrityError) as error:
            typer.echo(f"Failed to update {record_type} {identifier}: {error}")
            raise typer.Exit(code=1) from error
        _echo_record(store, record)


@app.command("list")
def list_records(
    record_type: str = typer.Argument(..., help="Record type to list."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the sluggable configuration file.",
    ),
) -> None:
    """List stored records with their slugs."""
    with _open_store(Path(config)) as store:
        if record_type not in store.registry:
            raise typer.BadParameter(f"Unknown record type '{record_type}'")
        records = store.session().all(record_type)
        if not records:
            typer.echo(f"No {record_type} records.")
            return
        for record in records:
            _echo_record(store, record)


def _echo_record(store: RecordStore, record: Record) -> None:
    identifier = store.registry.identifier(record.type)
    try:
        config = store.resolver.resolve(record.type)
    except SlugConfigurationError as error:
        typer.echo(f"Invalid slug configuration: {error}")
        raise typer.Exit(code=1) from error
    if config is None:
        typer.echo(f"{record.values.get(identifier)}")
        return
    typer.echo(f"{record.values.get(identifier)}\t{record.values.get(config.slug_field)}")


if __name__ == "__main__":
    app()
