import base64
import json
from datetime import timedelta
from typing import Any, Dict, Optional, TextIO

from .models import Evaluation


def _trim_fraction(value: int, unit: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    width = len(str(unit)) - 1
    return f"{whole}.{frac:0{width}d}".rstrip("0")


def format_duration(duration: timedelta) -> str:
    """Render a duration the way Go's time.Duration does, e.g. "850µs", "1.5s", "1m2s" """
    micros = (duration.days * 86400 + duration.seconds) * 1_000_000 + duration.microseconds
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)

    if micros < 1000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        return f"{sign}{_trim_fraction(micros, 1000)}ms"

    hours, rem = divmod(micros, 3_600_000_000)
    minutes, rem = divmod(rem, 60_000_000)
    seconds = _trim_fraction(rem, 1_000_000) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return sign + seconds


def _b64(data: Optional[bytes]) -> Optional[str]:
    if data is None:
        return None
    return base64.b64encode(data).decode("ascii")


def evaluation_to_dict(evaluation: Evaluation) -> Dict[str, Any]:
    return {
        "responder_url": evaluation.responder_url,
        "request_bytes": _b64(evaluation.request_bytes),
        "response_bytes": _b64(evaluation.response_bytes),
        "response_time": format_duration(evaluation.response_time),
        "error": str(evaluation.error) if evaluation.error is not None else None,
    }


def export_evaluation_json(evaluation: Evaluation, fp: TextIO) -> None:
    json.dump(evaluation_to_dict(evaluation), fp, indent="\t", sort_keys=True, ensure_ascii=False)
    fp.write("\n")
