"""Candle file loading — CSV, Parquet and JSON into ``Candle`` lists.

Column names are matched case-insensitively; ``time``/``date``/``datetime``
are accepted for the timestamp and ``o``/``h``/``l``/``c``/``v`` shorthands
for prices and volume.  Rows are sorted oldest first and de-duplicated by
timestamp (last row wins).  Missing volume becomes 0, which the analysis
treats as "no volume reported".
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable

import numpy as np
import pandas as pd

from marketlens.analysis.models import Candle

logger = logging.getLogger("marketlens")

_ALIASES = {
    "timestamp": ("timestamp", "time", "date", "datetime"),
    "open": ("open", "o"),
    "high": ("high", "h"),
    "low": ("low", "l"),
    "close": ("close", "c"),
    "volume": ("volume", "v", "vol"),
}
_PRICE_COLUMNS = ("open", "high", "low", "close")


# ── Normalisation ────────────────────────────────────────────────────────


def normalize_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Rename, type, sort and de-duplicate a raw candle frame.

    Raises ``ValueError`` naming the first required column that is missing,
    a row with a null or blank price, or a row whose high/low do not
    bracket its open/close.
    """
    lowered = {str(c).strip().lower(): c for c in df.columns}
    renamed: dict[Any, str] = {}
    for target, aliases in _ALIASES.items():
        for alias in aliases:
            if alias in lowered:
                renamed[lowered[alias]] = target
                break
        else:
            if target != "volume":
                raise ValueError(f"Candle data is missing a '{target}' column")

    df = df.rename(columns=renamed)[list(renamed.values())].copy()
    if "volume" not in df.columns:
        df["volume"] = 0.0

    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    for col in _PRICE_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="raise").astype(float)
    df["volume"] = pd.to_numeric(df["volume"], errors="coerce").fillna(0.0).astype(float)

    before = len(df)
    df = (
        df.sort_values("timestamp", kind="mergesort")
        .drop_duplicates(subset="timestamp", keep="last")
        .reset_index(drop=True)
    )
    if len(df) != before:
        logger.info("Dropped %d duplicate candle timestamp(s)", before - len(df))

    missing = df[list(_PRICE_COLUMNS)].isna()
    missing_rows = missing.any(axis=1)
    if missing_rows.any():
        row = int(np.flatnonzero(missing_rows.to_numpy())[0])
        col = next(c for c in _PRICE_COLUMNS if missing[c].iloc[row])
        raise ValueError(
            f"Candle at {df['timestamp'].iloc[row].isoformat()} has no {col} price"
        )

    bad = (df["high"] < df[["open", "close"]].max(axis=1)) | (
        df["low"] > df[["open", "close"]].min(axis=1)
    )
    if bad.any():
        row = int(np.flatnonzero(bad.to_numpy())[0])
        raise ValueError(
            f"Candle at {df['timestamp'].iloc[row].isoformat()} has high/low "
            "outside its open/close"
        )

    return df


def is_chronological(df: pd.DataFrame) -> bool:
    """True when timestamps are strictly increasing."""
    if len(df) < 2:
        return True
    stamps = df["timestamp"].dt.tz_convert(None).to_numpy()
    return bool(np.all(np.diff(stamps) > np.timedelta64(0)))


def frame_to_candles(df: pd.DataFrame) -> list[Candle]:
    """Convert a normalised frame into ``Candle`` objects (oldest first)."""
    if not is_chronological(df):
        raise ValueError("Candle timestamps must be strictly increasing")
    stamps = df["timestamp"].dt.strftime("%Y-%m-%dT%H:%M:%SZ")
    return [
        Candle(
            timestamp=ts,
            open=float(o),
            high=float(h),
            low=float(lo),
            close=float(c),
            volume=float(v),
        )
        for ts, o, h, lo, c, v in zip(
            stamps, df["open"], df["high"], df["low"], df["close"], df["volume"],
        )
    ]


def candles_from_records(records: Iterable[dict]) -> list[Candle]:
    """Build candles from dict records such as a JSON request body."""
    df = pd.DataFrame(list(records))
    if df.empty:
        return []
    return frame_to_candles(normalize_frame(df))


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "timestamp": c.timestamp,
                "open": c.open,
                "high": c.high,
                "low": c.low,
                "close": c.close,
                "volume": c.volume,
            }
            for c in candles
        ]
    )


# ── File I/O ─────────────────────────────────────────────────────────────


def load_candles(path: str | Path) -> list[Candle]:
    """Load candles from a ``.csv``, ``.parquet`` or ``.json`` file.

    JSON may be a bare list of candle objects or ``{"candles": [...]}``.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path)
    elif suffix in (".parquet", ".pq"):
        df = pd.read_parquet(path, engine="pyarrow")
    elif suffix == ".json":
        payload = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(payload, dict):
            payload = payload.get("candles", [])
        df = pd.DataFrame(payload)
    else:
        raise ValueError(f"Unsupported candle file type '{suffix}' ({path})")

    if df.empty:
        logger.warning("No candles in %s", path)
        return []

    candles = frame_to_candles(normalize_frame(df))
    logger.info(
        "Loaded %d candles from %s (%s → %s)",
        len(candles), path, candles[0].timestamp, candles[-1].timestamp,
    )
    return candles


def save_candles(candles: Iterable[Candle], path: str | Path) -> None:
    """Write candles to Parquet or CSV, creating directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = candles_to_frame(candles)
    if path.suffix.lower() in (".parquet", ".pq"):
        df.to_parquet(path, engine="pyarrow", index=False)
    else:
        df.to_csv(path, index=False)
    logger.info("Saved %d candles → %s", len(df), path)
