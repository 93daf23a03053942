import json
import logging
import pathlib
import random
from collections.abc import Callable
from typing import TypeVar

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from lkt_bridge import frames
from lkt_bridge.configs import Config
from lkt_bridge.downstream import txpk_to_downlink_frame
from lkt_bridge.errors import CodecError
from lkt_bridge.messages import GatewayStats, UplinkFrame
from lkt_bridge.packets import PushDataPayload
from lkt_bridge.upstream import rxpk_from_uplink_frame, stat_from_gateway_stats

T = TypeVar("T")

# stdout only carries the encoded/decoded output
console = Console(stderr=True)


def setup_logging(config: Config, verbose: bool) -> None:
    level = logging.DEBUG if verbose else config.logging.level.upper()
    logging.basicConfig(level=level)
    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers.clear()
    rich_handler = RichHandler(
        console=console,
        level=level,
        show_time=False,
        show_level=True,
        show_path=config.logging.show_path,
        markup=True,
    )
    logger.addHandler(rich_handler)


def load_config(config_path: pathlib.Path) -> Config:
    if not config_path.exists():
        return Config()
    try:
        return Config.model_validate_json(config_path.read_text())
    except ValidationError as e:
        raise click.ClickException(f"invalid configuration {config_path}: {e}") from e


def run(func: Callable[..., T], *args: object) -> T:
    """Call a codec function, turning codec errors into a CLI failure."""
    try:
        return func(*args)
    except CodecError as e:
        logging.error(f"[red]❌ {type(e).__name__}:[/red] {escape(str(e))}")
        raise click.ClickException(str(e)) from e


def log_panel(data: object, title: str, style: str) -> None:
    # RichHandler formats records to text, panels go to its console directly
    if logging.getLogger().isEnabledFor(logging.INFO):
        console.print(Panel(json.dumps(data, indent=2), title=title, style=style))


def read_json(path: pathlib.Path) -> dict[str, object]:
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise click.ClickException(f"{path} must contain a JSON object")
    return data  # pyright: ignore[reportUnknownVariableType]


def random_token(token: int | None) -> int:
    return token if token is not None else random.getrandbits(16)


token_option = click.option(
    "--token",
    type=click.IntRange(0, 0xFFFF),
    default=None,
    help="Random token of the datagram, drawn at random when omitted.",
)


@click.group()
@click.option(
    "--config-path",
    type=click.Path(dir_okay=False, path_type=pathlib.Path),
    default="config.json",
    help="Path to the configuration JSON file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level.")
@click.pass_context
def main(ctx: click.Context, config_path: pathlib.Path, verbose: bool):
    """Encode and decode Semtech UDP packet forwarder datagrams."""
    config = load_config(config_path)
    setup_logging(config, verbose)
    ctx.obj = config


@main.command()
@click.argument("datagram")
@click.option(
    "--downlink-id",
    default=None,
    help="Hex id given to the downlink frame of a PULL_RESP.",
)
@click.pass_obj
def decode(config: Config, datagram: str, downlink_id: str | None):
    """Decode an hex DATAGRAM; a PULL_RESP is also translated to a downlink frame."""
    try:
        data = bytes.fromhex(datagram)
        downlink = bytes.fromhex(downlink_id or config.downlink.downlink_id)
    except ValueError as e:
        raise click.ClickException(f"invalid hex string: {e}") from e

    envelope = run(frames.decode, data)
    decoded = {"type": str(envelope.IDENT), **envelope.model_dump(mode="json", exclude_none=True)}
    log_panel(decoded, str(envelope.IDENT), "cyan")
    click.echo(json.dumps(decoded))

    if isinstance(envelope, frames.PullResp):
        frame = run(
            txpk_to_downlink_frame,
            envelope.payload.txpk,
            downlink,
            config.gateway.gateway_eui,
        )
        log_panel(frame.to_dict(), "Downlink frame", "purple")
        click.echo(json.dumps(frame.to_dict()))


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=pathlib.Path))
@token_option
@click.pass_obj
def uplink(config: Config, path: pathlib.Path, token: int | None):
    """Encode the uplink frame JSON at PATH into a PUSH_DATA."""
    frame = UplinkFrame.from_dict(read_json(path))
    rxpk = run(rxpk_from_uplink_frame, frame)
    push_data = frames.PushData(
        random_token=random_token(token),
        gateway_id=config.gateway.gateway_eui,
        payload=PushDataPayload(rxpk=[rxpk]),
    )
    logging.info(f"📤 PUSH_DATA, 🔑 Token: {push_data.random_token}, 🏷️ Gateway: {config.gateway.gateway_id}")
    click.echo(push_data.to_bytes().hex())


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=pathlib.Path))
@token_option
@click.pass_obj
def stats(config: Config, path: pathlib.Path, token: int | None):
    """Encode the gateway stats JSON at PATH into a PUSH_DATA."""
    gateway_stats = GatewayStats.from_dict(read_json(path))
    stat = run(stat_from_gateway_stats, gateway_stats)
    push_data = frames.PushData(
        random_token=random_token(token),
        gateway_id=config.gateway.gateway_eui,
        payload=PushDataPayload(stat=stat),
    )
    logging.info(f"📤 PUSH_DATA stat, 🔑 Token: {push_data.random_token}")
    click.echo(push_data.to_bytes().hex())


@main.command()
@token_option
@click.pass_obj
def pull(config: Config, token: int | None):
    """Encode a PULL_DATA keepalive."""
    pull_data = frames.PullData(
        random_token=random_token(token), gateway_id=config.gateway.gateway_eui
    )
    click.echo(pull_data.to_bytes().hex())


@main.command("tx-ack")
@click.argument("error", default="")
@token_option
@click.pass_obj
def tx_ack(config: Config, error: str, token: int | None):
    """Encode a TX_ACK, ERROR is empty when the downlink was scheduled."""
    ack = frames.TxAck.for_error(random_token(token), config.gateway.gateway_eui, error)
    click.echo(ack.to_bytes().hex())


if __name__ == "__main__":
    main()
