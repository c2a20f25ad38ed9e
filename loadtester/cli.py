"""CLI entry point for the repeated-request API load tester."""

import asyncio
import json
import logging
import signal
import sys

import click

from loadtester import config
from loadtester.executor import RequestExecutor
from loadtester.generator import sample_profile, write_profile
from loadtester.history import append_record, create_record
from loadtester.loader import ProfileValidationError, load_profile
from loadtester.models import ExecutionConfig, RequestTemplate
from loadtester.report import (
    build_narrative,
    describe_response,
    entry_to_dict,
    outcome_to_dict,
    progress_line,
)
from loadtester.runner import LoadTestRunner, send_once
from loadtester.safety import ValidationError

logger = logging.getLogger(__name__)


def _parse_header_options(values):
    headers = {}
    for raw in values:
        key, sep, value = raw.partition(":")
        if not sep:
            raise click.BadParameter(f"expected 'Name: value', got {raw!r}", param_hint="--header")
        if key.strip() and value.strip():
            headers[key.strip()] = value.strip()
    return headers


def _build_request(profile, url, method, header, body):
    """Resolve the template and config from a profile file and/or options."""
    if profile:
        loaded = load_profile(profile)
        template, exec_config = loaded.template, loaded.config
    else:
        template = RequestTemplate(url=url or "")
        exec_config = ExecutionConfig(
            repetitions=config.DEFAULT_REPETITIONS,
            delay_ms=config.DEFAULT_DELAY_MS,
            concurrency=config.DEFAULT_CONCURRENCY,
        )

    headers = dict(template.headers)
    headers.update(_parse_header_options(header))
    template = RequestTemplate(
        url=url if url is not None else template.url,
        method=(method or template.method).upper(),
        headers=headers,
        body=body if body is not None else template.body,
    )
    return template, exec_config


def request_options(func):
    options = [
        click.option("--profile", default=None, type=click.Path(exists=True),
                     help="Path to a test profile (YAML or JSON)."),
        click.option("--url", default=None, help="Endpoint URL (overrides the profile)."),
        click.option("--method", default=None, help="HTTP method (overrides the profile)."),
        click.option("--header", "header", multiple=True,
                     help="Extra header as 'Name: value'. Repeatable."),
        click.option("--body", default=None, help="Request body (JSON for non-GET methods)."),
        click.option("-v", "--verbose", is_flag=True, help="Enable debug logging."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
def main():
    """API load tester -- send repeated, rate-limited requests to an endpoint you own."""


@main.command()
@request_options
@click.option("--repetitions", type=int, default=None, help="Number of requests (max 50).")
@click.option("--delay-ms", type=int, default=None, help="Pause between batches in ms.")
@click.option("--concurrency", type=int, default=None, help="Requests per batch (max 5).")
@click.option("--confirm-permission", is_flag=True,
              help="Confirm you have permission to load test this endpoint.")
@click.option("--log", "log_path", default=None, type=click.Path(),
              help="Optional path to the run history (JSONL). Appends an entry when provided.")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON.")
@click.option("--summary-only", is_flag=True, help="With --json, omit the per-request entries.")
def run(profile, url, method, header, body, verbose, repetitions, delay_ms,
        concurrency, confirm_permission, log_path, as_json, summary_only):
    """Run a repeated-request load test."""
    config.setup_logging(verbose)
    try:
        template, exec_config = _build_request(profile, url, method, header, body)
    except ProfileValidationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    exec_config = ExecutionConfig(
        repetitions=exec_config.repetitions if repetitions is None else repetitions,
        delay_ms=exec_config.delay_ms if delay_ms is None else delay_ms,
        concurrency=exec_config.concurrency if concurrency is None else concurrency,
    )

    try:
        runner, outcome = asyncio.run(_run(template, exec_config, confirm_permission))
    except ValidationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(outcome_to_dict(outcome, include_entries=not summary_only), indent=2, default=str))
    else:
        click.echo(build_narrative(outcome))

    if log_path:
        record = create_record(template, outcome, runner.warnings)
        append_record(record, log_path)
        click.echo(f"Run logged to {log_path}", err=True)


async def _run(template, exec_config, confirm_permission):
    async with RequestExecutor() as executor:
        runner = LoadTestRunner(executor)
        requested = {"n": 0}

        def on_start(clamped):
            requested["n"] = clamped.config.repetitions
            for warning in clamped.warnings:
                click.echo(f"Warning: {warning}", err=True)

        def on_entry(state):
            click.echo(progress_line(state, requested["n"]), err=True)

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, runner.stop)
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGINT handler not supported; Ctrl-C will abort the run")

        try:
            outcome = await runner.start(
                template, exec_config, confirm_permission, on_entry, on_start=on_start
            )
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass
        return runner, outcome


@main.command()
@request_options
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
def send(profile, url, method, header, body, verbose, as_json):
    """Send a single request and show its timing breakdown."""
    config.setup_logging(verbose)
    try:
        template, _ = _build_request(profile, url, method, header, body)
        entry = asyncio.run(_send(template))
    except (ProfileValidationError, ValidationError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(entry_to_dict(entry), indent=2, default=str))
        return

    for line in describe_response(entry.response):
        click.echo(line)
    response_body = entry.response.body
    if isinstance(response_body, (dict, list)):
        response_body = json.dumps(response_body, indent=2)
    click.echo("")
    click.echo(response_body if response_body is not None else "")


async def _send(template):
    async with RequestExecutor() as executor:
        return await send_once(executor, template)


@main.command()
@click.option("--url", required=True, help="Endpoint URL for the starter profile.")
@click.option("--out", required=True, type=click.Path(), help="Where to write the profile (YAML).")
def init(url, out):
    """Write a starter test profile."""
    write_profile(sample_profile(url), out)
    click.echo(f"Profile written to {out}")


if __name__ == "__main__":
    main()
