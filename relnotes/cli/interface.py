# relnotes/cli/interface.py
import sys
from pathlib import Path
from typing import Any, Optional

import click
from click_option_group import optgroup
from rich.console import Console as RichConsole
from rich.table import Table
import structlog

from relnotes import __version__ as app_version
from relnotes.config.loader import load_settings
from relnotes.config.settings import RenderSettings
from relnotes.core.inputs import load_release_data, read_helper_source, read_template_lines
from relnotes.core.output import write_to_file, write_to_stdout
from relnotes.core.templating import TemplateRenderer
from relnotes.core.templating.helpers import builtin_helpers
from relnotes.core.templating.custom_helpers import custom_template_helpers
from relnotes.exceptions import ReleaseNotesError
from relnotes.logging_setup import configure_logging

log = structlog.get_logger(__name__)


def _fail(error: Exception):
    log.error("handled_application_error_in_cli", error_type=type(error).__name__, message=str(error))
    click.secho(f"Error: {error}", fg="red", err=True)
    sys.exit(1)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option("--verbose", "-v", "verbosity_level", count=True, help="Verbosity: -v info, -vv debug.")
@click.option("--json-logs", "json_logs", is_flag=True, default=False, help="Emit logs as JSON lines on stderr.")
@click.version_option(version=app_version, prog_name="relnotes", help="Show version and exit.")
@click.pass_context
def main_cli_group(ctx: click.Context, verbosity_level: int, json_logs: bool):
    """relnotes: render release notes from build and release metadata
    with Handlebars templates and a pluggable helper library."""
    try:
        settings = load_settings()
    except ReleaseNotesError as e:
        _fail(e)

    log_level = settings.log_level
    if verbosity_level == 1: log_level = "info"
    elif verbosity_level >= 2: log_level = "debug"
    configure_logging(log_level_str=log_level, json_logs=json_logs or settings.json_logs)
    ctx.obj = settings


@main_cli_group.command("render")
@click.argument("template_path", type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path))
@optgroup.group("Data Options", help="Release data and helpers bound to the template.")
@optgroup.option("-d", "--data", "data_path", type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path), default=None, help="JSON file with workItems, commits, buildDetails, releaseDetails, compareReleaseDetails.")
@optgroup.option("--helpers", "helpers_path", type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path), default=None, help="File with custom helper definitions.")
@optgroup.option("--empty-set-text", "empty_set_text", default=None, help="Text rendered for sections with no matching entries.")
@optgroup.group("Output Options", help="Where the rendered notes go.")
@optgroup.option("-o", "--output", "output_file", type=click.Path(dir_okay=False, writable=True, path_type=Path), default=None, help="Write the notes to this file instead of stdout.")
@optgroup.group("Execution Options", help="Expression evaluation behaviour.")
@optgroup.option("--allow-unsafe-code", "allow_unsafe_code", is_flag=True, default=False, help="Run template expressions and custom helpers as unrestricted Python. Trusted templates only.")
@click.pass_obj
def render_command(settings: RenderSettings, template_path: Path, data_path: Optional[Path], helpers_path: Optional[Path],
                   empty_set_text: Optional[str], output_file: Optional[Path], allow_unsafe_code: bool):
    """Render TEMPLATE_PATH against release data."""
    if allow_unsafe_code:
        settings.allow_unsafe_code = True
    if empty_set_text is not None:
        settings.empty_set_text = empty_set_text
    log.debug("render_command_invoked", template=str(template_path), data=str(data_path) if data_path else None,
              helpers=str(helpers_path) if helpers_path else None, unsafe_code=settings.allow_unsafe_code)

    try:
        lines = read_template_lines(template_path)
        data = load_release_data(data_path)
        helper_source = read_helper_source(helpers_path)
        rendered = TemplateRenderer(settings).render(
            lines,
            work_items=data.work_items,
            commits=data.commits,
            build_details=data.build_details,
            release_details=data.release_details,
            compare_release_details=data.compare_release_details,
            custom_helpers=helper_source,
        )
        if output_file:
            write_to_file(output_file, rendered)
            click.echo(f"Info: Release notes written to: {output_file}", err=True)
        else:
            write_to_stdout(rendered)
    except ReleaseNotesError as e:
        _fail(e)


@main_cli_group.command("helpers")
@click.option("--helpers", "helpers_path", type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path), default=None, help="File with custom helper definitions to include.")
@click.option("--allow-unsafe-code", "allow_unsafe_code", is_flag=True, default=False, help="Compile custom helpers as unrestricted Python.")
@click.pass_obj
def helpers_command(settings: RenderSettings, helpers_path: Optional[Path], allow_unsafe_code: bool):
    """List the helpers a render would register."""
    unsafe = settings.allow_unsafe_code or allow_unsafe_code
    try:
        custom = custom_template_helpers(read_helper_source(helpers_path), allow_unsafe_code=unsafe)
    except ReleaseNotesError as e:
        _fail(e)

    builtin_names = list(builtin_helpers(unsafe))
    table = Table(title="Template helpers")
    table.add_column("Name", style="cyan")
    table.add_column("Source")
    for name in builtin_names:
        table.add_row(name, "custom (overrides built-in)" if name in custom else "built-in")
    for name in custom:
        if name not in builtin_names:
            table.add_row(name, "custom")
    RichConsole().print(table)
