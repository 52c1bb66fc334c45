import sys
from datetime import datetime
from enum import StrEnum


class M(StrEnum):
    # ── Relay lifecycle ──
    RSTR = "RSTR"  # relay listening
    RURI = "RURI"  # redirect URI to register with the provider
    RWAI = "RWAI"  # waiting for the provider redirect
    RSTP = "RSTP"  # relay stopped

    # ── Login outcome ──
    LSUC = "LSUC"  # authorization code received
    LFAL = "LFAL"  # provider reported an error
    LMAL = "LMAL"  # malformed provider redirect
    LTMO = "LTMO"  # no redirect before the timeout

    # ── System / Infrastructure ──
    SINF = "SINF"  # system info
    SWRN = "SWRN"  # system warning
    SERR = "SERR"  # system error
    SCFG = "SCFG"  # config message


_enabled = True


def set_enabled(value: bool) -> None:
    global _enabled
    _enabled = value


def _ts() -> str:
    return datetime.now().strftime("%H:%M:%S")


def emit(code: M, message: str, *, truncate: int = 0) -> None:
    if not _enabled:
        return
    if truncate > 0 and len(message) > truncate:
        message = message[:truncate] + f"... [{len(message) - truncate} chars]"
    stream = sys.stderr if code in (M.SERR, M.SWRN) else sys.stdout
    print(f"{{{code.value}}}{_ts()} {message}", file=stream, flush=True)
