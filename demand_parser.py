# demand_parser.py
import re
from typing import Any, Dict, Optional, Tuple

from tiles import CATALOG, TileCatalog

_ID_RE = re.compile(r"^(?:lot[_-]?)?(?P<id>\d+)$", re.IGNORECASE)

def _first(raw: Any) -> Any:
    # form posts arrive as lists of strings
    if isinstance(raw, (list, tuple)):
        return raw[0] if raw else None
    return raw

def _to_count(raw: Any) -> Optional[int]:
    raw = _first(raw)
    if raw is None:
        return None
    v_str = str(raw).strip()
    if v_str == "":
        return None
    try:
        return int(float(v_str))
    except Exception:
        return None

def _normalize_key(key: str) -> str:
    k = (key or "").strip()
    for pre in ("q_", "qty_", "stock_", "count_"):
        if k.lower().startswith(pre):
            k = k[len(pre):]
            break
    return k.replace(" ", "_").lower()

def _resolve_lot(key: str, catalog: TileCatalog) -> Optional[int]:
    k = _normalize_key(key)
    m = _ID_RE.match(k)
    if m:
        lot_id = int(m.group("id"))
        return lot_id if lot_id in catalog.larges else None
    for pre in ("lot_", "lot-"):
        if k.startswith(pre):
            k = k[len(pre):]
            break
    large = catalog.lot_by_name(k)
    return large.id if large is not None else None

def parse_inventory(payload: Dict[str, Any], catalog: TileCatalog = CATALOG) -> Tuple[bool, Dict[int, int]]:
    """
    Parse a posted payload into { lot_id: stock }.
    Accepts {"inventory": {...}}, a flat mapping keyed by lot name or id, or
    form keys like ``lot_200=3`` / ``q_shop=1``.  Unknown keys are ignored;
    negative counts are clamped to zero.
    """
    if not isinstance(payload, dict):
        return (False, {})
    nested = payload.get("inventory")
    if isinstance(nested, dict):
        payload = nested

    bag: Dict[int, int] = {}
    for raw_k, raw_v in payload.items():
        count = _to_count(raw_v)
        if count is None:
            continue
        lot_id = _resolve_lot(str(raw_k), catalog)
        if lot_id is None:
            continue
        bag[lot_id] = max(0, count)

    if not bag:
        return (False, {})

    return (True, bag)
