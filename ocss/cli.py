"""
OCSS CLI — Command-line interface
=================================

Commands:
  ocss keys           Account key management
  ocss deploy         Deploy a secret-sharing contract
  ocss state          Show a contract's on-chain state
  ocss upload         Split a secret and upload the shares
  ocss download       Download shares and reconstruct a secret
  ocss engine serve   Run an engine's HTTP server
  ocss randomness     Publish randomness with in-process engines

Copyright (c) 2026 CruxLabx — AGPL-3.0
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from ocss import __version__
from ocss.config import OCSSConfig, SchemeKind, ShamirConfig, SharingConfig


def _run(coro):
    """Run async coroutine from sync context."""
    return asyncio.run(coro)


def _config(ctx) -> OCSSConfig:
    return ctx.obj["config"]


def _open_ledger(ctx):
    from ocss.chain.ledger import Ledger

    return Ledger(_config(ctx).ledger_path)


def _load_key(ctx, name: str, password: str):
    from ocss.crypto.keys import KeyStore

    try:
        return KeyStore(_config(ctx).keys_dir).load(name, password or None)
    except KeyError:
        raise click.ClickException(f"No key named {name!r}. Create it with `ocss keys create`.")
    except (TypeError, ValueError) as e:
        raise click.ClickException(f"Cannot unlock key {name!r}: {e}")


def _resolve_address(ctx, name_or_address: str) -> str:
    """Accept either a stored key name or a hex account address."""
    from ocss.crypto.keys import KeyStore

    record = KeyStore(_config(ctx).keys_dir).get_record(name_or_address)
    return record.address if record else name_or_address


def _build_client(ctx, ledger, contract: str, key, scheme: Optional[str],
                  malicious: int, threshold: int):
    from ocss.client.client import SecretSharingClient
    from ocss.sharing import create_factory

    config = _config(ctx)
    kind = SchemeKind(scheme) if scheme else config.sharing.scheme
    num_nodes = len(ledger.get_state(contract).nodes)
    sharing = SharingConfig(
        scheme=kind,
        shamir=ShamirConfig(
            num_malicious=malicious,
            num_nodes=num_nodes,
            num_to_reconstruct=threshold,
        ) if kind is SchemeKind.SHAMIR else config.sharing.shamir,
    )
    return SecretSharingClient(
        ledger, contract, key, create_factory(sharing), config=config.client
    )


_password_option = click.option(
    "--password",
    envvar="OCSS_KEY_PASSWORD",
    prompt="Key password",
    hide_input=True,
    default="",
    help="Password protecting the key",
)

_scheme_options = [
    click.option("--scheme", type=click.Choice([k.value for k in SchemeKind]),
                 default=None, help="Sharing scheme (default from config)"),
    click.option("--malicious", "-t", default=1, help="Shamir: tolerated malicious engines"),
    click.option("--threshold", "-k", default=2, help="Shamir: shares needed to reconstruct"),
]


def _with_scheme_options(fn):
    for option in reversed(_scheme_options):
        fn = option(fn)
    return fn


# ─── Root Group ───────────────────────────────────────────────

@click.group(
    name="ocss",
    help="OCSS — Off-chain secret sharing with on-chain commitments",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option(
    "--data-dir", "-d",
    default="~/.ocss",
    envvar="OCSS_DATA_DIR",
    help="Data directory (ledger, keys, engine stores)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="ocss")
@click.pass_context
def cli(ctx, data_dir: str, verbose: bool):
    """OCSS — Off-chain secret sharing"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=level,
        stream=sys.stderr,
    )
    config = OCSSConfig(data_dir=Path(data_dir).expanduser())
    config.ensure_dirs()
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["verbose"] = verbose


# ─── keys ─────────────────────────────────────────────────────

@cli.group()
def keys():
    """Account key management."""


@keys.command("create")
@click.argument("name")
@click.option("--password", envvar="OCSS_KEY_PASSWORD", prompt="Key password",
              hide_input=True, confirmation_prompt=True, default="",
              help="Password protecting the key")
@click.pass_context
def keys_create(ctx, name: str, password: str):
    """Generate a new secp256k1 account key."""
    from ocss.crypto.keys import KeyStore

    try:
        key = KeyStore(_config(ctx).keys_dir).create(name, password or None)
    except (FileExistsError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"✓ Key {name} created")
    click.echo(f"  Address: {key.address}")


@keys.command("list")
@click.pass_context
def keys_list(ctx):
    """List stored keys (never shows key material)."""
    from ocss.crypto.keys import KeyStore

    records = KeyStore(_config(ctx).keys_dir).list_records()
    if not records:
        click.echo("No keys.")
        return
    for r in records:
        click.echo(f"  {r.name:<20} {r.address}  {r.algorithm}")


@keys.command("show")
@click.argument("name")
@click.pass_context
def keys_show(ctx, name: str):
    """Print the address of a stored key."""
    from ocss.crypto.keys import KeyStore

    record = KeyStore(_config(ctx).keys_dir).get_record(name)
    if record is None:
        raise click.ClickException(f"No key named {name!r}")
    click.echo(record.address)


# ─── deploy / state ───────────────────────────────────────────

@cli.command()
@click.option("--key", "key_name", required=True, help="Deployer key name")
@click.option("--engine", "-e", "engines", multiple=True, required=True,
              help="Engine as KEY_OR_ADDRESS=ENDPOINT (repeatable, ordered)")
@click.option("--window-ms", default=None, type=int, help="Download window in ms")
@_password_option
@click.pass_context
def deploy(ctx, key_name: str, engines: tuple, window_ms: Optional[int], password: str):
    """Deploy a secret-sharing contract for the given engines."""
    from ocss.chain.secret_sharing import SecretSharingContract

    nodes = []
    for entry in engines:
        who, sep, endpoint = entry.partition("=")
        if not sep or not endpoint:
            raise click.BadParameter(f"Expected KEY_OR_ADDRESS=ENDPOINT, got {entry!r}")
        nodes.append({"address": _resolve_address(ctx, who), "endpoint": endpoint})

    key = _load_key(ctx, key_name, password)
    ledger = _open_ledger(ctx)
    try:
        address = ledger.deploy(
            key,
            SecretSharingContract,
            nodes=nodes,
            download_window_ms=window_ms or _config(ctx).contract.download_window_ms,
        )
    finally:
        ledger.close()
    click.echo(f"✓ Contract deployed: {address}")
    click.echo(f"  Engines: {len(nodes)}")


@cli.command()
@click.argument("contract")
@click.pass_context
def state(ctx, contract: str):
    """Print a contract's state as JSON."""
    from ocss.errors import ContractError

    ledger = _open_ledger(ctx)
    try:
        current = ledger.get_state(contract)
    except ContractError as e:
        raise click.ClickException(str(e))
    finally:
        ledger.close()
    click.echo(json.dumps(current.model_dump(mode="json"), indent=2))


# ─── upload / download ────────────────────────────────────────

@cli.command()
@click.argument("contract")
@click.argument("sharing_id", type=int)
@click.option("--key", "key_name", required=True, help="Owner key name")
@click.option("--secret", "-s", default=None, help="Secret as text")
@click.option("--file", "-f", "file_path", default=None,
              type=click.Path(exists=True, dir_okay=False), help="Secret from file")
@_with_scheme_options
@_password_option
@click.pass_context
def upload(ctx, contract: str, sharing_id: int, key_name: str, secret: Optional[str],
           file_path: Optional[str], scheme: Optional[str], malicious: int,
           threshold: int, password: str):
    """Split a secret, register it on-chain and upload the shares."""
    from ocss.errors import ContractError, EngineRequestError

    if (secret is None) == (file_path is None):
        raise click.UsageError("Give exactly one of --secret or --file")
    plaintext = secret.encode("utf-8") if secret is not None else Path(file_path).read_bytes()

    key = _load_key(ctx, key_name, password)
    ledger = _open_ledger(ctx)

    async def do_upload():
        client = _build_client(ctx, ledger, contract, key, scheme, malicious, threshold)
        async with client:
            await client.register_and_upload_sharing(sharing_id, plaintext)

    try:
        _run(do_upload())
    except (ContractError, EngineRequestError, ValueError) as e:
        raise click.ClickException(str(e))
    finally:
        ledger.close()
    click.echo(f"✓ Sharing {sharing_id} uploaded ({len(plaintext)} bytes)")


@cli.command()
@click.argument("contract")
@click.argument("sharing_id", type=int)
@click.option("--key", "key_name", required=True, help="Owner key name")
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False),
              help="Write the secret to a file instead of stdout")
@_with_scheme_options
@_password_option
@click.pass_context
def download(ctx, contract: str, sharing_id: int, key_name: str, output: Optional[str],
             scheme: Optional[str], malicious: int, threshold: int, password: str):
    """Download the shares of a sharing and reconstruct the secret."""
    from ocss.errors import OCSSError

    key = _load_key(ctx, key_name, password)
    ledger = _open_ledger(ctx)

    async def do_download() -> bytes:
        client = _build_client(ctx, ledger, contract, key, scheme, malicious, threshold)
        async with client:
            return await client.download_and_reconstruct(sharing_id)

    try:
        plaintext = _run(do_download())
    except (OCSSError, ValueError) as e:
        raise click.ClickException(str(e))
    finally:
        ledger.close()

    if output:
        Path(output).write_bytes(plaintext)
        click.echo(f"✓ Secret written to {output}")
    else:
        click.echo(plaintext.decode("utf-8", errors="replace"))


# ─── engine ───────────────────────────────────────────────────

@cli.group()
def engine():
    """Off-chain engine operations."""


@engine.command("serve")
@click.option("--key", "key_name", required=True, help="Engine key name")
@click.option("--host", default=None, help="Bind host")
@click.option("--port", "-p", default=None, type=int, help="HTTP port")
@_password_option
@click.pass_context
def engine_serve(ctx, key_name: str, host: Optional[str], port: Optional[int], password: str):
    """Start an engine's HTTP server."""
    import uvicorn
    from ocss.engine.server import EngineAPI
    from ocss.engine.store import ShareStore

    config = _config(ctx)
    host = host or config.engine.host
    port = port or config.engine.port
    key = _load_key(ctx, key_name, password)

    api = EngineAPI(
        ledger=_open_ledger(ctx),
        engine_key=key,
        store=ShareStore(config.engine_store_path(key.address)),
        max_share_bytes=config.engine.max_share_bytes,
    )

    click.echo(f"OCSS v{__version__} engine starting at http://{host}:{port}")
    click.echo(f"  engine   : {key.address}")
    click.echo(f"  data_dir : {config.data_dir}")
    click.echo(f"  docs     : http://{host}:{port}/docs")

    uvicorn.run(api.app, host=host, port=port, log_level="info")


# ─── randomness ───────────────────────────────────────────────

@cli.group()
def randomness():
    """Publish-randomness contract."""


@randomness.command("run")
@click.option("--engines", "-n", "num_engines", default=4, help="Number of engines")
@click.option("--rounds", "-r", default=3, help="Random values to publish")
@click.pass_context
def randomness_run(ctx, num_engines: int, rounds: int):
    """Deploy a contract with fresh in-process engines and consume values."""
    from ocss.chain.randomness import PublishRandomnessContract, RandomnessEngine
    from ocss.crypto.keys import KeyPair
    from ocss.errors import ContractError

    ledger = _open_ledger(ctx)
    try:
        engine_keys = [KeyPair.generate() for _ in range(num_engines)]
        consumer = KeyPair.generate()
        address = ledger.deploy(
            consumer,
            PublishRandomnessContract,
            engines=[{"address": k.address} for k in engine_keys],
        )
        click.echo(f"✓ Contract deployed: {address}")

        workers = [RandomnessEngine(ledger, k, address) for k in engine_keys]
        for worker in workers:
            worker.attach()

        for i in range(rounds):
            try:
                value = ledger.invoke(consumer, address, "consume_randomness")
            except ContractError as e:
                raise click.ClickException(str(e))
            click.echo(f"  round {i + 1}: {value.hex()}")
    finally:
        ledger.close()


# ─── Entry point ──────────────────────────────────────────────

def main():
    cli()


if __name__ == "__main__":
    main()
