"""
Main CLI interface for audiomirror

The CLI is built using Click and provides:
- sync: mirror the library into a destination directory
- stats: library statistics, runtime statistics and a tree listing
- config: show or write the configuration

Global options select the library and how it is read; command options
override the loaded settings for a single run.
"""

import functools
import os
import sys

import click
import yaml

from . import __version__
from .audio.codecs import MutagenGateway
from .config.settings import Settings, get_settings, reload_settings
from .exceptions import ConfigError, LibraryError
from .library.database import read_library
from .library.stats import LibraryStats, runtime_lines, tree_lines
from .sync.operator import PolicyKind, create_operator, policy_kind
from .sync.planner import Planner
from .utils.console import Console
from .utils.helpers import format_elapsed
from .utils.logger import configure_from_settings, create_operation_logger, get_logger

logger = get_logger(__name__)


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    Catches exceptions, prints a red error message and exits with status 1
    (130 for a keyboard interrupt).

    Args:
        func: The CLI command function to wrap

    Returns:
        Wrapped function with error handling
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg='yellow'), err=True)
            sys.exit(130)
        except (click.ClickException, click.exceptions.Exit, click.exceptions.Abort):
            raise
        except Exception as e:
            logger.debug(f"Command failed: {e!r}", exc_info=e)
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


def _settings(ctx) -> Settings:
    return ctx.obj['settings']


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Also report files that are up to date or ignored')
@click.option('--config', type=click.Path(dir_okay=False), help='Path to config file')
@click.option('--library', '-L', type=click.Path(file_okay=False), help='Library path')
@click.option('--color/--no-color', default=None, help='Colored output (default: when writing to a terminal)')
@click.option('--ignore-hidden/--no-ignore-hidden', default=None, help='Skip files and directories starting with "."')
@click.option('--follow-symlinks/--no-follow-symlinks', default=None, help='Walk symlinked directories')
@click.pass_context
@handle_error
def cli(ctx, version, verbose, config, library, color, ignore_hidden, follow_symlinks):
    """
    audiomirror - keep a transcoded mirror of your music library

    Reads the library (-L) and a destination directory, then copies,
    transcodes, updates or removes files until the destination matches.
    """
    ctx.ensure_object(dict)

    if version:
        click.echo(f"audiomirror v{__version__}")
        ctx.exit()

    settings = reload_settings(config) if config else get_settings()
    configure_from_settings(settings)

    if library:
        settings.library.path = library
    if ignore_hidden is not None:
        settings.library.ignore_hidden = ignore_hidden
    if follow_symlinks is not None:
        settings.library.follow_symlinks = follow_symlinks
    if verbose:
        settings.sync.verbose = True

    if color is None:
        color = settings.logging.colored_output and sys.stdout.isatty()

    ctx.obj['settings'] = settings
    ctx.obj['color'] = color

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument('destination', type=click.Path(file_okay=False))
@click.option('--concurrent', '-w', type=int, help='Number of encoders to run at once (default: CPU count)')
@click.option('--force', '-f', is_flag=True, help='Transcode even files that could be copied')
@click.option('--dry-run', '-n', is_flag=True, help='Only show what would be done')
@click.option('--delete-before', '-d', is_flag=True, help='Remove destination files without a source first')
@click.option('--only-music', '-m', is_flag=True, help='Do not copy non-music files')
@click.option('--threshold', '-t', type=int, help='Copy MP3s at or below this bitrate (Kbps)')
@click.option('--quality', '-q', type=int, help='LAME VBR quality, 0 (best) to 9')
@click.option('--opus', '-u', is_flag=True, help='Encode to Opus instead of MP3')
@click.option('--bitrate', '-r', help='Target bitrate for Opus, e.g. 96k')
@click.option('--use-ogg-extension', is_flag=True, help='Name Opus files .ogg')
@click.option('--fail-fast', is_flag=True, help='Abort on the first error')
@click.option('--downscale-cover', is_flag=True, help='Write downscaled cover images')
@click.option('--strip', is_flag=True, help='Show paths relative to the library roots')
@click.option('--progress/--no-progress', default=None, help='Show a progress bar of encoding jobs (default: when stderr is a terminal)')
@click.pass_context
@handle_error
def sync(ctx, destination, concurrent, force, dry_run, delete_before, only_music, threshold,
         quality, opus, bitrate, use_ogg_extension, fail_fast, downscale_cover, strip, progress):
    """
    Synchronize the library into DESTINATION

    Music files are transcoded (or copied, when they are already small
    enough) and other files are copied. Files that are up to date are left
    alone; with --delete-before, files that are no longer in the library
    are removed.
    """
    settings = _settings(ctx)
    _apply_sync_options(settings, ctx.params)

    errors = settings.validation_errors()
    if concurrent is not None and concurrent < 1:
        errors.append(f"Concurrency must be at least 1: {concurrent}")
    if errors:
        raise ConfigError("; ".join(errors), details={'errors': errors})

    gateway = MutagenGateway()
    operation = create_operation_logger(__name__, "Sync")

    operation.start(f"Reading library {settings.get_library_path()}")
    source = read_library(
        str(settings.get_library_path()),
        gateway,
        ignore_hidden=settings.library.ignore_hidden,
        follow_symlinks=settings.library.follow_symlinks,
    )

    kind = policy_kind(settings)
    destination = os.path.abspath(os.path.expanduser(destination))
    console = Console(
        color=ctx.obj['color'],
        strip_prefixes=settings.sync.strip_prefixes,
        prefixes=[source.root, destination],
    )
    operator = create_operator(kind, settings, console)
    show_progress = sys.stderr.isatty() if progress is None else progress

    if not os.path.exists(destination):
        if kind is PolicyKind.DRY_RUN:
            raise LibraryError(f"destination does not exist: {destination}", details={'path': destination})
        operator.create_dir(destination)

    target = read_library(
        destination,
        gateway,
        ignore_hidden=settings.library.ignore_hidden,
        follow_symlinks=settings.library.follow_symlinks,
    )

    planner = Planner(
        source,
        target,
        operator,
        ignore_data=settings.sync.only_music,
        delete_before=settings.sync.delete_before,
        concurrency=settings.effective_concurrency(),
        data_exceptions=settings.sync.data_exceptions,
        ignore_files=settings.sync.ignore_files,
        cover_source=settings.cover.source,
        cover_target=settings.cover.target,
        downscale_cover=settings.cover.downscale,
        progress=kind is not PolicyKind.DRY_RUN and show_progress,
    )
    logger.debug(f"Planning with {operator!r}, {settings}")

    try:
        planner.plan()
    except Exception as e:
        operation.error(str(e))
        raise
    elapsed = operation.complete()
    logger.console_info(f"Synchronized {len(source)} entries in {format_elapsed(elapsed)}")


def _apply_sync_options(settings: Settings, options: dict) -> None:
    """Copy command-line options that were given onto the settings"""
    overrides = [
        ('concurrent', settings.sync, 'concurrency'),
        ('force', settings.sync, 'force_transcode'),
        ('dry_run', settings.sync, 'dry_run'),
        ('delete_before', settings.sync, 'delete_before'),
        ('only_music', settings.sync, 'only_music'),
        ('fail_fast', settings.sync, 'fail_on_error'),
        ('strip', settings.sync, 'strip_prefixes'),
        ('threshold', settings.mp3, 'bitrate_threshold'),
        ('quality', settings.mp3, 'quality'),
        ('opus', settings.lossy, 'enabled'),
        ('bitrate', settings.lossy, 'bitrate'),
        ('use_ogg_extension', settings.lossy, 'use_ogg_extension'),
        ('downscale_cover', settings.cover, 'downscale'),
    ]
    for option, section, attribute in overrides:
        value = options.get(option)
        # Flags can only switch a setting on
        if value is not None and value is not False:
            setattr(section, attribute, value)
    if options.get('opus'):
        settings.lossy.codec = 'opus'


@cli.command()
@click.option('--standard', '-s', is_flag=True, help='Show standard statistics')
@click.option('--runtime', '-r', is_flag=True, help='Show runtime statistics')
@click.option('--tree', '-t', is_flag=True, help='Show library tree')
@click.pass_context
@handle_error
def stats(ctx, standard, runtime, tree):
    """
    Show library statistics

    Without options the standard statistics are shown: size, play time and
    the number of songs, artists, albums and genres.
    """
    settings = _settings(ctx)
    color = ctx.obj['color']
    if not (standard or runtime or tree):
        standard = True

    gateway = MutagenGateway()
    db = read_library(
        str(settings.get_library_path()),
        gateway,
        ignore_hidden=settings.library.ignore_hidden,
        follow_symlinks=settings.library.follow_symlinks,
    )

    sections = []
    if tree:
        sections.append(tree_lines(db, color=color))
    if standard:
        def warn(message):
            click.echo(click.style(f"Warning: {message}", fg='yellow'), err=True)

        sections.append(LibraryStats.collect(db, on_warning=warn).lines(color=color))
    if runtime:
        # Printed last so that it includes the metadata reads above
        sections.append(runtime_lines(gateway.stats))

    for lines in sections:
        click.echo("\n".join(lines))
        click.echo()


@cli.group()
def config():
    """Configuration management"""
    pass


@config.command('show')
@click.pass_context
@handle_error
def config_show(ctx):
    """Show the effective configuration"""
    settings = _settings(ctx)
    source = settings.loaded_from or "defaults"
    click.echo(click.style(f"# loaded from: {source}", fg='cyan'))
    click.echo(yaml.safe_dump(settings.to_dict(), default_flow_style=False, sort_keys=False).rstrip())

    for error in settings.validation_errors():
        click.echo(click.style(f"Invalid: {error}", fg='red'), err=True)


@config.command('init')
@click.argument('path', required=False, type=click.Path(dir_okay=False))
@click.option('--force', is_flag=True, help='Overwrite an existing file')
@click.pass_context
@handle_error
def config_init(ctx, path, force):
    """Write the current configuration to PATH (default ~/.audiomirror/config.yaml)"""
    settings = _settings(ctx)
    target = path or str(settings.get_config_directory() / "config.yaml")
    if os.path.exists(target) and not force:
        raise ConfigError(f"{target} already exists, use --force to overwrite", details={'file_path': target})
    written = settings.save_config(target)
    click.echo(click.style(f"Configuration written to {written}", fg='green'))


def main():
    """Entry point for python -m audiomirror"""
    cli(obj={})


if __name__ == '__main__':
    main()
