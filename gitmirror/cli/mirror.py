"""
CLI mirror commands — sync, status and cleanup of local mirrors.

Usage:
    gitmirror sync [--cachedir DIR] [--repomappingsfile FILE] [--mirror] [--json]
    gitmirror status [--cachedir DIR] [--json]
    gitmirror clean [--cachedir DIR] [NAME...] [--all] [--yes]
"""

from __future__ import annotations

import json

import click

from ..config.loader import ConfigError


def _fail(message: str) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    raise SystemExit(1)


@click.command("sync")
@click.option("--cachedir", "cache_dir", default=None, help="Git cache directory (default: temp dir)")
@click.option("--repomappingsfile", "mappings_file", default=None, help="File with repo mappings")
@click.option("--mirror/--no-mirror", "mirror_enabled", default=None,
              help="Push refreshed mirrors to their destinations")
@click.option("--workers", type=int, default=None, help="Repositories synced in parallel")
@click.option("--timeout", "timeout_seconds", type=int, default=None, help="Seconds allowed per git command")
@click.option("--git", "git_binary", default=None, help="git executable")
@click.option("--json", "as_json", is_flag=True, help="Print the run summary as JSON")
@click.option("--fail-on-error", is_flag=True, help="Exit 1 if any repository failed")
@click.pass_context
def mirror_sync(
    ctx: click.Context,
    cache_dir: str | None,
    mappings_file: str | None,
    mirror_enabled: bool | None,
    workers: int | None,
    timeout_seconds: int | None,
    git_binary: str | None,
    as_json: bool,
    fail_on_error: bool,
) -> None:
    """Refresh every mapped repository and optionally push it onward."""
    from ..config.loader import ensure_cache_dir, load_repo_mappings
    from ..mirror.manager import MirrorManager

    try:
        settings = ctx.obj["settings"].with_overrides(
            cache_dir=cache_dir,
            mappings_file=mappings_file,
            mirror_enabled=mirror_enabled,
            workers=workers,
            timeout_seconds=timeout_seconds,
            git_binary=git_binary,
        )
        root = ensure_cache_dir(settings.cache_dir)
        mappings = load_repo_mappings(settings.mappings_file)
        manager = MirrorManager(settings, root)
        summary = manager.run(mappings.repos)
    except ConfigError as e:
        _fail(str(e))
        return

    if as_json:
        click.echo(json.dumps({"cache_dir": str(root), **summary.to_dict()}, indent=2))
    else:
        click.echo(f"\n🔀 Mirror sync — {root}\n")
        for outcome in sorted(summary.outcomes, key=lambda o: o.name):
            if outcome.ok:
                note = " (reused)" if outcome.reused else ""
                click.secho(f"  ✅ {outcome.name}{note}", fg="green")
            else:
                failed = next(s for s in outcome.stages if not s.ok)
                click.secho(f"  ❌ {outcome.name}: {outcome.status} — {(failed.error or '')[:80]}", fg="red")
        click.echo()
        if summary.ok:
            click.secho(f"✅ {summary.succeeded}/{summary.total} repos synced", fg="green")
        else:
            click.secho(f"⚠️  {summary.succeeded}/{summary.total} repos synced, {summary.failed} failed", fg="yellow")

    if fail_on_error and not summary.ok:
        raise SystemExit(1)


@click.command("status")
@click.option("--cachedir", "cache_dir", default=None, help="Git cache directory")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def mirror_status(ctx: click.Context, cache_dir: str | None, as_json: bool) -> None:
    """Show the result of the last sync run."""
    from ..mirror.state import MirrorState

    settings = ctx.obj["settings"].with_overrides(cache_dir=cache_dir)
    if settings.cache_dir is None:
        _fail("No cache dir: pass --cachedir or set GITMIRROR_CACHE_DIR")
        return

    state = MirrorState.load(settings.cache_dir)

    if as_json:
        click.echo(json.dumps(state.to_dict(), indent=2, default=str))
        return

    click.echo("\n🔀 Mirror Status\n")
    click.echo(f"  Cache dir:  {settings.cache_dir}")
    click.echo(f"  Last run:   {state.last_run_iso or 'never'}")
    click.echo(f"  Repos:      {len(state.repos)}")
    click.echo()

    if not state.repos:
        click.echo("  No sync recorded yet. Run `gitmirror sync` first.")
        click.echo()
        return

    for repo in state.repos:
        icon = "✅" if repo.status == "ok" else "❌"
        line = f"  {icon} {repo.name}: {repo.status}"
        if repo.reused:
            line += " (reused)"
        if repo.last_error:
            line += f" — {repo.last_error[:80]}"
        click.echo(line)
    click.echo()


@click.command("clean")
@click.argument("names", nargs=-1)
@click.option("--cachedir", "cache_dir", default=None, help="Git cache directory")
@click.option("--all", "clean_all", is_flag=True, help="Remove every cached mirror")
@click.option("--yes", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def mirror_clean(ctx: click.Context, names: tuple, cache_dir: str | None, clean_all: bool, yes: bool) -> None:
    """Remove cached mirrors so the next sync clones them fresh."""
    from ..mirror.git_sync import remove_cache
    from ..mirror.models import RepositoryDescriptor
    from ..mirror.state import STATUS_FILE

    settings = ctx.obj["settings"].with_overrides(cache_dir=cache_dir)
    if settings.cache_dir is None:
        _fail("No cache dir: pass --cachedir or set GITMIRROR_CACHE_DIR")
        return
    root = settings.cache_dir

    if clean_all:
        names = tuple(sorted(p.name for p in root.iterdir() if p.is_dir())) if root.is_dir() else ()
    if not names:
        click.secho("Specify repository names or --all", fg="yellow")
        raise SystemExit(1)

    errors = 0
    for name in names:
        if name in ("", ".", "..", STATUS_FILE) or "/" in name or "\\" in name:
            click.secho(f"  ❌ {name!r}: not a repository name", fg="red")
            errors += 1
            continue
        repo = RepositoryDescriptor(name=name, local_root=root / name, source_url="", destination_url="")
        if not repo.local_root.exists():
            click.echo(f"  ⏭️  {name}: not cached")
            continue
        if not yes:
            click.confirm(f"Really remove {repo.local_root}?", abort=True)
        result = remove_cache(repo)
        if result.ok:
            click.secho(f"  ✅ {name}: removed", fg="green")
        else:
            click.secho(f"  ❌ {name}: {result.error}", fg="red")
            errors += 1

    if errors:
        raise SystemExit(1)
