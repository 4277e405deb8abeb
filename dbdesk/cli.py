"""Command-line interface for DBDesk."""

import click
import json
import logging
import queue
import sys
import yaml
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

from dbdesk.core.channel import RequestChannel
from dbdesk.core.database import DatabaseConnection, DatabaseConfig
from dbdesk.core.models import ManagerConfig


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress non-error output')
def cli(verbose: bool, quiet: bool):
    """JaySoft-DBDesk - Manage local PostgreSQL databases and fill them with dummy data."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif quiet:
        logging.getLogger().setLevel(logging.ERROR)


CONNECTION_OPTIONS = [
    click.option('--host', '-h', help='Database host [default: localhost]'),
    click.option('--port', '-p', type=int, help='Database port [default: 5432]'),
    click.option('--database', '-d', help='Database to connect to [default: postgres]'),
    click.option('--username', '-u', help='Database username [default: postgres]'),
    click.option('--password', envvar='PGPASSWORD', help='Database password'),
    click.option('--config', '-c', 'config_path', type=click.Path(exists=True),
                 help='Configuration file (JSON/YAML)'),
]


def connection_options(command):
    """Options shared by every command that talks to the server."""
    for option in reversed(CONNECTION_OPTIONS):
        command = option(command)
    return command


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from JSON or YAML file."""
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, 'r') as f:
        if config_file.suffix.lower() == '.json':
            return json.load(f) or {}
        else:
            return yaml.safe_load(f) or {}


def build_configs(host: Optional[str] = None, port: Optional[int] = None,
                  database: Optional[str] = None, username: Optional[str] = None,
                  password: Optional[str] = None, config_path: Optional[str] = None,
                  **overrides) -> Tuple[DatabaseConfig, ManagerConfig]:
    """Merge file settings with command-line options.

    Only options given on the command line override file values; anything
    left unset falls back to the file, then to the model defaults.
    """
    file_config = load_config_file(config_path) if config_path else {}

    connection = dict(file_config.get('connection') or {})
    options = dict(host=host, port=port, database=database, username=username, password=password)
    connection.update({key: value for key, value in options.items() if value is not None})

    manager = dict(file_config.get('manager') or {})
    manager.update({key: value for key, value in overrides.items() if value is not None})

    return DatabaseConfig(**connection), ManagerConfig(**manager)


def open_channel(db_config: DatabaseConfig, manager_config: ManagerConfig) -> RequestChannel:
    db_conn = DatabaseConnection(db_config, maintenance_database=manager_config.neutral_database)
    db_conn.connect()
    return RequestChannel(db_conn, manager_config, show_progress=True)


def report_events(channel: RequestChannel) -> None:
    """Print feedback and export events collected while a request ran."""
    while True:
        try:
            event, payload = channel.events.get_nowait()
        except queue.Empty:
            break
        if event == 'feedback':
            icon = '❌' if payload['type'] == 'error' else '⚠️ '
            click.echo(f"{icon} {payload['message']}", err=True)
        elif event == 'csv-exported':
            click.echo(f"  💾 {payload['table']}: {payload['rows']:,} rows → {payload['path']}")


Payload = Union[Dict[str, Any], Callable[[str], Dict[str, Any]]]


def run_request(ctx_kwargs: Dict[str, Any], request: str, payload: Payload,
                **overrides) -> Any:
    """Open a channel, run one request, report its events and close everything.

    ``payload`` may be a callable taking the resolved connection name, for
    requests that refer to the database the command connected to.
    """
    db_config, manager_config = build_configs(**ctx_kwargs, **overrides)
    if callable(payload):
        payload = payload(db_config.database)
    channel = open_channel(db_config, manager_config)
    try:
        return channel.handle(request, payload)
    finally:
        report_events(channel)
        channel.close()
        channel.db_connection.close()


def fail(e: Exception) -> None:
    click.echo(f"\n❌ Error: {e}", err=True)
    sys.exit(1)


@cli.command(name='list')
@connection_options
def list_databases(**kwargs):
    """List databases and the tables of the connected one."""
    try:
        snapshot = run_request(kwargs, 'return-db-list', {})
    except Exception as e:
        fail(e)

    click.echo(f"\n📚 Databases:")
    for db in snapshot.databases:
        marker = ' (connected)' if db['name'] == snapshot.current_database else ''
        click.echo(f"  • {db['name']}: {db['size']}{marker}")

    click.echo(f"\n📋 Tables in {snapshot.current_database}:")
    for table in snapshot.tables:
        click.echo(f"  • {table.name}: {len(table.columns)} columns")


@cli.command()
@connection_options
@click.argument('name')
def create(name: str, **kwargs):
    """Create an empty database."""
    try:
        run_request(kwargs, 'create-db', {'name': name})
    except Exception as e:
        fail(e)
    click.echo(f"✅ Created database {name}")


@cli.command()
@connection_options
@click.argument('name')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
def drop(name: str, yes: bool, **kwargs):
    """Drop a database."""
    if not yes and not click.confirm(f"Drop database {name}?"):
        click.echo("Operation cancelled.")
        return
    try:
        run_request(kwargs, 'drop-db', lambda connected: {
            'db_name': name,
            'is_active_connection': name == connected,
        })
    except Exception as e:
        fail(e)
    click.echo(f"✅ Dropped database {name}")


@cli.command()
@connection_options
@click.argument('source_db')
@click.argument('new_name')
@click.option('--with-data/--schema-only', default=True, help='Copy rows or only the schema')
@click.option('--dump-dir', type=click.Path(file_okay=False), help='Directory for the temporary dump')
@click.option('--pg-bin-dir', type=click.Path(file_okay=False), help='Directory holding pg_dump/psql')
def duplicate(source_db: str, new_name: str, with_data: bool, dump_dir: Optional[str],
              pg_bin_dir: Optional[str], **kwargs):
    """Copy SOURCE_DB into a new database NEW_NAME."""
    try:
        run_request(kwargs, 'duplicate-db', {
            'new_name': new_name,
            'source_db': source_db,
            'with_data': with_data,
        }, dump_dir=dump_dir, pg_bin_dir=pg_bin_dir)
    except Exception as e:
        fail(e)
    click.echo(f"✅ Duplicated {source_db} into {new_name}")


@cli.command(name='import')
@connection_options
@click.argument('new_name')
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--pg-bin-dir', type=click.Path(file_okay=False), help='Directory holding psql/pg_restore')
def import_db(new_name: str, file_path: str, pg_bin_dir: Optional[str], **kwargs):
    """Create NEW_NAME and restore a .sql or .tar dump into it."""
    try:
        run_request(kwargs, 'import-db', {
            'new_db_name': new_name,
            'file_path': file_path,
        }, pg_bin_dir=pg_bin_dir)
    except Exception as e:
        fail(e)
    click.echo(f"✅ Imported {file_path} into {new_name}")


@cli.command()
@connection_options
@click.argument('sql')
@click.option('--target', '-t', help='Database to run the query on (default: --database)')
@click.option('--show-plan', is_flag=True, help='Print the captured execution plan')
def query(sql: str, target: Optional[str], show_plan: bool, **kwargs):
    """Run SQL and report its execution time."""
    try:
        result = run_request(kwargs, 'run-query', lambda connected: {
            'target_db': target or connected,
            'sql_string': sql,
            'selected_db': connected,
        })
    except Exception as e:
        fail(e)

    if result.returned_rows:
        click.echo(f"\n📊 {len(result.returned_rows)} rows:")
        for row in result.returned_rows:
            click.echo(f"  {row}")
    if result.pretty_time:
        click.echo(f"\n⏱️  Total time: {result.pretty_time}")
    if show_plan and result.explain_result:
        click.echo(json.dumps(result.explain_result, indent=2, default=str))
    if result.error:
        click.echo(f"\n⚠️  {result.error}", err=True)
        sys.exit(1)


def parse_row_counts(values: Tuple[str, ...]) -> Dict[str, int]:
    """Parse repeated ``table=N`` options."""
    counts = {}
    for value in values:
        table, sep, count = value.partition('=')
        if not sep or not table:
            raise click.BadParameter(f"Expected table=N, got '{value}'")
        try:
            counts[table.strip()] = int(count)
        except ValueError:
            raise click.BadParameter(f"Row count for {table} is not a number: '{count}'")
    return counts


@cli.command()
@connection_options
@click.option('--rows', '-r', 'rows', multiple=True, required=True,
              help='Rows to generate as table=N (repeatable)')
@click.option('--output-dir', '-o', type=click.Path(file_okay=False), help='Directory for CSV files')
@click.option('--seed', type=int, help='Random seed for reproducible generation')
@click.option('--insert/--no-insert', default=None, help='Insert generated rows into the database')
def generate(rows: Tuple[str, ...], output_dir: Optional[str], seed: Optional[int],
             insert: Optional[bool], **kwargs):
    """Generate dummy data for tables of the connected database."""
    row_counts = parse_row_counts(rows)
    try:
        paths = run_request(kwargs, 'generate-dummy-data', lambda connected: {
            'schema_name': connected,
            'row_count_by_table': row_counts,
        }, export_dir=output_dir, seed=seed, insert_generated=insert)
    except Exception as e:
        fail(e)
    click.echo(f"\n🎉 Generated {len(paths)} tables")


@cli.command()
@click.option('--output', '-o', type=click.Path(), default='dbdesk_config.yaml',
              help='Output configuration file path')
def init_config(output: str):
    """Create a sample configuration file."""
    config_template = {
        'connection': {
            'host': 'localhost',
            'port': 5432,
            'username': 'postgres',
        },
        'manager': {
            'pg_bin_dir': None,
            'dump_dir': None,
            'export_dir': '.',
            'process_timeout': 600,
            'sample_percent': 50,
            'seed': 42,
            'insert_generated': True,
            'neutral_database': 'postgres',
        },
    }

    output_path = Path(output)
    with open(output_path, 'w') as f:
        yaml.dump(config_template, f, default_flow_style=False, indent=2)

    click.echo(f"✅ Configuration template created: {output_path}")


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == '__main__':
    main()
