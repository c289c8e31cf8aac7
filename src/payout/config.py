import os
import tomllib
from pathlib import Path

from payout.errors import InputError

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"


def load_config(path: str | Path | None = None) -> dict:
    """Read the TOML settings, then apply environment overrides.

    ``PAYOUT_CONFIG`` names an alternative file and ``RPC_URL`` replaces the
    node endpoint.
    """
    path = Path(path or os.getenv("PAYOUT_CONFIG", config_file))
    try:
        cfg = tomllib.loads(path.read_text())
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise InputError(f"Cannot read config {path}: {e}") from e

    rpc = cfg.setdefault("rpc", {})
    rpc["url"] = os.getenv("RPC_URL", rpc.get("url", "http://127.0.0.1:8899"))
    rpc.setdefault("timeout", 10.0)
    poll = cfg.setdefault("poll", {})
    poll.setdefault("interval", 0.5)
    poll.setdefault("max_confirmations", 32)
    cfg.setdefault("ledger", {}).setdefault("transactions_db", "transactions.db")
    return cfg
