"""Command-line interface for task validation."""

import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict

import click

from . import __version__
from .config import CliConfig, clear_config, get_config_path, load_config, save_config
from .git_utils import RepositoryStateError
from .report import (
    build_detailed_report,
    format_changes,
    format_summary,
    format_validation_result,
    save_report,
    to_jsonable,
)
from .rules import RulesFileError, example_task_rules, load_task_rules
from .runner import collect_changes, run_validation
from .validator import (
    MODEL_COMMANDS,
    ValidationError,
    check_model_available,
    is_score_inconsistent,
    preflight_check,
)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose):
    """Task validator - check business rules against branch changes."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--model", "-m", default=None, help="Default model to use")
@click.option("--default-branch", default=None, help="Default base branch")
@click.option("--output-dir", default=None, help="Default report directory")
@click.option("--rules-file", default=None, help="Default rules file")
@click.option("--logs-dir", default=None, help="Default analysis log directory")
@click.option("--timeout", type=int, default=None, help="Validation timeout in seconds")
@click.option("--show", is_flag=True, default=False, help="Show current configuration")
@click.option("--clear", is_flag=True, default=False, help="Remove saved configuration")
def config(model, default_branch, output_dir, rules_file, logs_dir, timeout, show, clear):
    """Manage CLI configuration."""
    path = get_config_path()

    if show:
        current = load_config()
        for key, value in asdict(current).items():
            click.echo(f"{key}: {value}")
        click.echo(f"\nConfiguration file: {path}")
        return

    if clear:
        if clear_config():
            click.echo("Configuration cleared.")
        else:
            click.echo("No configuration to clear.")
        return

    current = load_config()
    updates = {
        "model": model,
        "default_branch": default_branch,
        "output_dir": output_dir,
        "rules_file": rules_file,
        "logs_dir": logs_dir,
        "timeout": timeout,
    }
    updates = {k: v for k, v in updates.items() if v is not None}

    if not updates:
        click.echo("Nothing to change. Use --show to see the current configuration.")
        return

    if "model" in updates and updates["model"] not in MODEL_COMMANDS:
        click.echo(
            f"Error: Unknown model: {updates['model']}. Available: {', '.join(MODEL_COMMANDS)}",
            err=True,
        )
        sys.exit(1)

    for key, value in updates.items():
        setattr(current, key, value)
        click.echo(f"Set {key} = {value}")

    try:
        saved = save_config(current)
    except OSError as e:
        click.echo(f"Error: Could not save configuration: {e}", err=True)
        sys.exit(1)
    click.echo(f"Configuration saved to {saved}")


@cli.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    default=None,
    help="Where to write the rules file (default: configured rules file)",
)
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file")
def init(output, force):
    """Create an example rules file."""
    path = output or load_config().rules_file

    if os.path.exists(path) and not force:
        click.echo(f"Error: {path} already exists (use --force to overwrite)", err=True)
        sys.exit(1)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(example_task_rules(), f, indent=2)

    click.echo(f"Created rules file: {path}")
    click.echo("Edit it with the rules for your task.")


@cli.command()
@click.option("--base", "-b", default=None, help="Base branch to compare against")
@click.option(
    "--repo",
    "-r",
    type=click.Path(exists=True, file_okay=False, dir_okay=True),
    default=".",
    help="Repository directory to analyze (default: current directory)",
)
@click.option(
    "--rules",
    type=click.Path(),
    default=None,
    help="Rules file used to select relevant paths",
)
@click.option("--all", "include_all", is_flag=True, default=False, help="Skip relevance filtering")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON")
def changes(base, repo, rules, include_all, as_json):
    """Show the change set that would be validated."""
    cfg = load_config()
    base = base or cfg.default_branch

    task_rules = None
    if rules and not include_all:
        try:
            task_rules = load_task_rules(rules)
        except RulesFileError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    try:
        change_set = collect_changes(repo, base, task_rules, filter_relevant=not include_all)
    except (RepositoryStateError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for error in change_set.errors:
        click.echo(f"Warning: {error}", err=True)

    if as_json:
        click.echo(json.dumps(to_jsonable(change_set), indent=2))
        return

    click.echo(f"Branch: {change_set.branch_name} (base: {base})")
    if change_set.relevant_paths:
        click.echo(f"Relevant paths: {', '.join(change_set.relevant_paths)}")
    click.echo(format_changes(change_set.changes))


@cli.command()
@click.option("--base", "-b", default=None, help="Base branch to compare against")
@click.option(
    "--repo",
    "-r",
    type=click.Path(exists=True, file_okay=False, dir_okay=True),
    default=".",
    help="Repository directory to analyze (default: current directory)",
)
@click.option("--rules", type=click.Path(), default=None, help="Rules file (default: task-rules.json)")
@click.option("--model", "-m", default=None, help="Model to use (default: claude)")
@click.option("--output-dir", "-o", type=click.Path(), default=None, help="Report directory")
@click.option("--logs-dir", type=click.Path(), default=None, help="Analysis log directory")
@click.option("--timeout", type=int, default=None, help="Validation timeout in seconds")
@click.option(
    "--output",
    type=click.Choice(["full", "summary"]),
    default="full",
    help="Output format (default: full)",
)
@click.option(
    "--min-score",
    type=click.FloatRange(0.0, 1.0),
    default=None,
    help="Exit with code 1 when completeness is below this score",
)
def validate(base, repo, rules, model, output_dir, logs_dir, timeout, output, min_score):
    """Validate the task rules against the branch changes."""
    cfg: CliConfig = load_config()
    base = base or cfg.default_branch
    rules = rules or cfg.rules_file
    model = model or cfg.model
    output_dir = output_dir or cfg.output_dir
    logs_dir = logs_dir or cfg.logs_dir
    timeout = timeout or cfg.timeout

    try:
        task_rules = load_task_rules(rules)
    except RulesFileError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    # Preflight check
    missing = preflight_check([model])
    if missing:
        click.echo(f"Error: Missing CLI tool: {model}", err=True)
        click.echo("Install it or use --model to select an available one.", err=True)
        sys.exit(1)

    click.echo(f"Validating {task_rules.task_id} against {base} with {model}...", err=True)
    try:
        run = asyncio.run(
            run_validation(
                task_rules,
                repo,
                base,
                model=model,
                timeout=timeout,
                logs_dir=logs_dir,
            )
        )
    except (RepositoryStateError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except TimeoutError:
        click.echo(f"Error: Validation timed out after {timeout}s", err=True)
        sys.exit(1)
    except ValidationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for error in run.change_set.errors:
        click.echo(f"Warning: {error}", err=True)
    if run.change_set.relevant_paths:
        click.echo(f"Relevant paths: {', '.join(run.change_set.relevant_paths)}", err=True)
    click.echo(f"Analyzed {len(run.change_set.changes)} changed file(s)", err=True)

    result = run.result
    if output == "full":
        click.echo(format_validation_result(result, task_rules.title, base))
    else:
        click.echo(format_summary(result))

    try:
        report_path = save_report(build_detailed_report(result), output_dir)
        click.echo(f"Saved report to {report_path}", err=True)
    except OSError as e:
        click.echo(f"Warning: Could not save report: {e}", err=True)

    if run.log_paths.get("analysis"):
        click.echo(f"Saved analysis log to {run.log_paths['analysis']}", err=True)

    if is_score_inconsistent(result):
        click.echo(
            "Warning: high completeness score but no rules implemented - check the logs.",
            err=True,
        )

    if min_score is not None and result.completeness_score < min_score:
        click.echo(
            f"Completeness {result.completeness_score:.2f} is below --min-score {min_score:.2f}",
            err=True,
        )
        sys.exit(1)


@cli.command()
def models():
    """List available models and their status."""
    click.echo("Available models:\n")
    for name, cmd in MODEL_COMMANDS.items():
        available = check_model_available(name)
        status = "available" if available else "not found"
        click.echo(f"  {name}: {cmd[0]} [{status}]")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
@click.option("--port", "-p", default=8000, type=int, help="Port to listen on (default: 8000)")
def serve(host, port):
    """Run the validation HTTP service."""
    import uvicorn

    uvicorn.run("task_validator.server:app", host=host, port=port)


if __name__ == "__main__":
    cli()
