import json
import logging
from typing import Any

import typer
import yaml

from .core import config as relay_config
from .core.config import (
    GlobalConfig,
    LoginConfig,
    ServerConfig,
    ensure_global_config,
    load_global_config,
    select_environment,
)
from .core.constants import TARGET_ORIGIN_ANY
from .core.message import M, emit, set_enabled
from .core.relay import BindError, RelayOptions, RelayResult, ResultKind, start

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Loopback relay for OAuth authorization-code redirects.")

EXIT_FAILED = 1
EXIT_BIND = 2


def _relay_options(cfg: GlobalConfig) -> RelayOptions:
    return RelayOptions(
        target_origin=cfg.relay.target_origin,
        message_type=cfg.relay.message_type,
        close_window=cfg.relay.close_window,
        cors_allow_origin=cfg.relay.cors_allow_origin or None,
    )


def _print_json(data: dict[str, Any]) -> None:
    print(json.dumps(data), flush=True)  # CLI user output


def _report(result: RelayResult | None, timeout: float, as_json: bool) -> int:
    if result is None:
        if as_json:
            _print_json({"kind": "timeout", "timeout": timeout})
        emit(M.LTMO, f"No redirect received within {timeout:g}s.")
        return EXIT_FAILED

    if as_json:
        _print_json(result.to_dict())
    if result.kind is ResultKind.SUCCESS:
        emit(M.LSUC, f"Authorization code received ({len(result.code or '')} chars).")
        return 0
    if result.kind is ResultKind.FAILURE:
        emit(M.LFAL, f"Provider returned an error: {result.error_detail}")
    else:
        emit(M.LMAL, f"Malformed provider redirect: {result.error_detail}")
    return EXIT_FAILED


@app.callback()
def _global_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log each HTTP request"),
) -> None:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Listen address (default from config)"),
    port: int | None = typer.Option(None, help="Listen port (default from config)"),
    path: str | None = typer.Option(None, "--path", help="Callback path (default from config)"),
    timeout: float | None = typer.Option(None, help="Seconds to wait for the redirect"),
    env: str | None = typer.Option(None, "--env", help="Environment profile to use"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as one JSON line"),
) -> None:
    """Listen for one provider redirect, relay it, and report the result."""
    cfg = load_global_config()
    set_enabled(not as_json)

    try:
        profile = select_environment(cfg, env)
    except ValueError as e:
        emit(M.SERR, str(e))
        raise typer.Exit(EXIT_FAILED)

    try:
        server_cfg = ServerConfig(
            host=cfg.server.host if host is None else host,
            port=cfg.server.port if port is None else port,
            callback_path=cfg.server.callback_path if path is None else path,
        )
        login_cfg = LoginConfig(timeout=cfg.login.timeout if timeout is None else timeout)
    except ValueError as e:
        emit(M.SERR, f"Invalid option: {e}")
        raise typer.Exit(EXIT_FAILED)
    host, port, path = server_cfg.host, server_cfg.port, server_cfg.callback_path
    timeout = login_cfg.timeout

    if cfg.relay.target_origin == TARGET_ORIGIN_ANY:
        logger.warning("relay.target_origin is '*': any opener window can read the code")

    try:
        handle = start(port, path, host=host, options=_relay_options(cfg))
    except BindError as e:
        if as_json:
            _print_json({"kind": "bind_error", "reason": e.reason, "port": e.port, "error_detail": str(e)})
        emit(M.SERR, str(e))
        raise typer.Exit(EXIT_BIND)

    with handle:
        emit(M.RSTR, f"Relay listening on {handle.host}:{handle.port}")
        emit(M.RURI, f"Redirect URI: {handle.redirect_uri} (profile expects {profile.auth_callback_url})")
        emit(M.RWAI, f"Waiting up to {timeout:g}s for the provider redirect...")
        try:
            result = handle.wait(timeout)
        except KeyboardInterrupt:
            emit(M.SWRN, "Login cancelled.")
            raise typer.Exit(EXIT_FAILED)
    emit(M.RSTP, "Relay stopped.")

    code = _report(result, timeout, as_json)
    if code:
        raise typer.Exit(code)


@app.command(name="config")
def show_config(
    env: str | None = typer.Option(None, "--env", help="Environment profile to show"),
) -> None:
    """Print the resolved configuration as YAML."""
    cfg = load_global_config()
    try:
        profile = select_environment(cfg, env)
    except ValueError as e:
        emit(M.SERR, str(e))
        raise typer.Exit(EXIT_FAILED)

    data = cfg.model_dump()
    data["selected_profile"] = {"name": env or cfg.environment.active, **profile.model_dump()}
    print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False), end="")  # CLI user output


@app.command(name="init-config")
def init_config() -> None:
    """Write the default configuration file if it does not exist yet."""
    if ensure_global_config():
        emit(M.SCFG, f"Wrote default config to {relay_config.GLOBAL_CONFIG_PATH}")
    else:
        emit(M.SCFG, f"Config already exists (or could not be written): {relay_config.GLOBAL_CONFIG_PATH}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
