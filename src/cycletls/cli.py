"""CycleTLS command line.

Usage:
    cycletls probe                               # Show host/client role for the port
    cycletls probe --port 9200                   # Probe a custom port
    cycletls request https://example.com         # GET through a running worker
    cycletls request URL -X post -d '{"a": 1}'   # POST with a body
    cycletls request URL -H "Accept: */*" -b session=abc --format json
    cycletls config                              # Show effective configuration
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click

from .client import init_cycletls
from .config import ClientConfig
from .errors import CycleTLSError
from .negotiator import Role, probe_role

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

METHODS = ["head", "get", "post", "put", "delete", "trace", "options", "connect", "patch"]


def truncate(text: str | None, max_len: int = 50) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def parse_pairs(values: tuple[str, ...], separator: str, what: str) -> dict[str, str]:
    """Parse ``key<separator>value`` options into a dict."""
    pairs: dict[str, str] = {}
    for value in values:
        key, sep, rest = value.partition(separator)
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected KEY{separator}VALUE, got {value!r}", param_hint=what)
        pairs[key.strip()] = rest.strip()
    return pairs


def _configure_logging(debug: bool) -> None:
    # Logs go to stderr, responses to stdout
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


@click.group()
def main() -> None:
    """CycleTLS client - send TLS-fingerprinted requests through a worker."""


@main.command()
@click.option("--host", default=None, help="Control-channel host")
@click.option("--port", type=int, default=None, help="Control-channel port")
def probe(host: str | None, port: int | None) -> None:
    """Show whether this process would host the channel or join it."""
    config = ClientConfig.from_env().with_overrides(host=host, port=port)
    role = probe_role(config.host, config.port)

    if role == Role.HOST:
        click.echo(f"host: nothing is listening on {config.host}:{config.port}")
    else:
        click.echo(f"client: {config.host}:{config.port} is in use")


@main.command()
@click.argument("url")
@click.option(
    "--method",
    "-X",
    type=click.Choice(METHODS, case_sensitive=False),
    default="get",
    help="HTTP method",
)
@click.option("--header", "-H", "headers", multiple=True, help="Header as 'Name: value'")
@click.option("--cookie", "-b", "cookies", multiple=True, help="Cookie as 'name=value'")
@click.option("--data", "-d", "body", default=None, help="Request body")
@click.option("--ja3", default=None, help="JA3 fingerprint string")
@click.option("--user-agent", "-A", default=None, help="User-Agent header")
@click.option("--proxy", default=None, help="Proxy URL")
@click.option("--timeout", type=int, default=None, help="Timeout hint for the worker (seconds)")
@click.option("--no-redirect", is_flag=True, help="Do not follow redirects")
@click.option("--host", default=None, help="Control-channel host")
@click.option("--port", type=int, default=None, help="Control-channel port")
@click.option(
    "--connect-timeout",
    type=float,
    default=10.0,
    help="Seconds to wait for the channel and the response",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
def request(
    url: str,
    method: str,
    headers: tuple[str, ...],
    cookies: tuple[str, ...],
    body: str | None,
    ja3: str | None,
    user_agent: str | None,
    proxy: str | None,
    timeout: int | None,
    no_redirect: bool,
    host: str | None,
    port: int | None,
    connect_timeout: float,
    debug: bool,
    output_format: str,
) -> None:
    """Send one request through a running worker.

    Examples:

        # Simple GET
        cycletls request https://example.com

        # POST JSON with a header
        cycletls request https://httpbin.org/post -X post -d '{"a": 1}' -H "Content-Type: application/json"

        # JSON output for scripting
        cycletls request https://example.com --format json
    """
    _configure_logging(debug)

    options: dict[str, Any] = {
        "headers": parse_pairs(headers, ":", "--header") or None,
        "cookies": parse_pairs(cookies, "=", "--cookie") or None,
        "body": body,
        "ja3": ja3,
        "userAgent": user_agent,
        "proxy": proxy,
        "timeout": timeout,
        "disableRedirect": no_redirect,
    }

    async def run() -> dict[str, Any]:
        config = ClientConfig.from_env().with_overrides(host=host, port=port, debug=debug or None)
        if probe_role(config.host, config.port) == Role.HOST:
            raise click.ClickException(f"No worker is listening on {config.host}:{config.port}")

        client = await asyncio.wait_for(init_cycletls(config=config), timeout=connect_timeout)
        try:
            response = await asyncio.wait_for(
                client.request(url, options, method.lower()),
                timeout=connect_timeout,
            )
        finally:
            await client.exit()
        return response.model_dump()

    try:
        result = asyncio.run(run())
    except TimeoutError:
        click.echo(f"Timed out after {connect_timeout}s", err=True)
        sys.exit(1)
    except CycleTLSError as e:
        click.echo(f"Request failed: {e}", err=True)
        sys.exit(1)

    if output_format == FORMAT_JSON:
        click.echo(json.dumps(result, indent=2, ensure_ascii=False, default=str))
        return

    click.echo(f"Status: {result['status']}")
    for name, value in result["headers"].items():
        if isinstance(value, list):
            for item in value:
                click.echo(f"{name}: {truncate(str(item), 100)}")
        else:
            click.echo(f"{name}: {truncate(str(value), 100)}")
    click.echo("")

    response_body = result["body"]
    if isinstance(response_body, str):
        click.echo(response_body)
    else:
        click.echo(json.dumps(response_body, indent=2, ensure_ascii=False))


@main.command("config")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def show_config(output_json: bool) -> None:
    """Show the effective client configuration."""
    config = ClientConfig.from_env()
    data = {
        "url": config.url,
        "host": config.host,
        "port": config.port,
        "debug": config.debug,
        "reconnect_delay": config.reconnect_delay,
        "flush_interval": config.flush_interval,
    }

    if output_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.echo("CycleTLS Client Configuration")
    click.echo("-" * 40)
    click.echo(f"Channel URL:        {data['url']}")
    click.echo(f"Debug logging:      {data['debug']}")
    click.echo(f"Reconnect delay:    {data['reconnect_delay']}s")
    click.echo(f"Queue flush:        {data['flush_interval']}s")


if __name__ == "__main__":
    main()
