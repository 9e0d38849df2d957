"""Turn tray, conduit, ductbank and cable schedule rows into routing inputs.

Schedules come from spreadsheets and forms, so numbers may arrive as strings
and field names vary by raceway kind.
"""

import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .exceptions import ScheduleError
from .geometry import Point3
from .log import get_logger
from .models import CableSpec, RacewaySegment, RouteSegment

logger = get_logger("normalize")

# Internal area (in^2) by conduit type and trade size
CONDUIT_SPECS: Dict[str, Dict[str, float]] = {
    "EMT": {"1/2": 0.304, "3/4": 0.533, "1": 0.864, "1-1/4": 1.496, "1-1/2": 2.036, "2": 3.356,
            "2-1/2": 5.858, "3": 8.846, "3-1/2": 11.545, "4": 14.753},
    "ENT": {"1/2": 0.285, "3/4": 0.508, "1": 0.832, "1-1/4": 1.453, "1-1/2": 1.986, "2": 3.291},
    "FMC": {"3/8": 0.116, "1/2": 0.317, "3/4": 0.533, "1": 0.817, "1-1/4": 1.277, "1-1/2": 1.858,
            "2": 3.269, "2-1/2": 4.909, "3": 7.069, "3-1/2": 9.621, "4": 12.566},
    "IMC": {"1/2": 0.342, "3/4": 0.586, "1": 0.959, "1-1/4": 1.647, "1-1/2": 2.225, "2": 3.63,
            "2-1/2": 5.135, "3": 7.922, "3-1/2": 10.584, "4": 13.631},
    "LFNC-A": {"3/8": 0.192, "1/2": 0.312, "3/4": 0.535, "1": 0.854, "1-1/4": 1.502, "1-1/2": 2.018,
               "2": 3.343},
    "LFNC-B": {"3/8": 0.192, "1/2": 0.314, "3/4": 0.541, "1": 0.873, "1-1/4": 1.528, "1-1/2": 1.981,
               "2": 3.246},
    "LFMC": {"3/8": 0.192, "1/2": 0.314, "3/4": 0.541, "1": 0.873, "1-1/4": 1.277, "1-1/2": 1.858,
             "2": 3.269, "2-1/2": 4.881, "3": 7.475, "3-1/2": 9.731, "4": 12.692},
    "RMC": {"1/2": 0.314, "3/4": 0.549, "1": 0.887, "1-1/4": 1.526, "1-1/2": 2.071, "2": 3.408,
            "2-1/2": 4.866, "3": 7.499, "3-1/2": 10.01, "4": 12.882, "5": 20.212, "6": 29.158},
    "PVC Sch 80": {"1/2": 0.217, "3/4": 0.409, "1": 0.688, "1-1/4": 1.237, "1-1/2": 1.711, "2": 2.874,
                   "2-1/2": 4.119, "3": 6.442, "3-1/2": 8.688, "4": 11.258, "5": 17.855, "6": 25.598},
    "PVC Sch 40": {"1/2": 0.285, "3/4": 0.508, "1": 0.832, "1-1/4": 1.453, "1-1/2": 1.986, "2": 3.291,
                   "2-1/2": 4.695, "3": 7.268, "3-1/2": 9.737, "4": 12.554, "5": 19.761, "6": 28.567},
    "PVC Type A": {"1/2": 0.385, "3/4": 0.65, "1": 1.084, "1-1/4": 1.767, "1-1/2": 2.324, "2": 3.647,
                   "2-1/2": 5.453, "3": 8.194, "3-1/2": 10.694, "4": 13.723},
    "PVC Type EB": {"2": 3.874, "3": 8.709, "3-1/2": 11.365, "4": 14.448, "5": 22.195, "6": 31.53},
}

DEFAULT_DUCTBANK_SIZE = 12.0
DEFAULT_BARE_DIAMETER = 0.25
DEFAULT_INSULATION = 0.03


def _float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _first(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def _point(record: Mapping[str, Any], which: str) -> Optional[Point3]:
    """Read ``start``/``end`` as a list, an ``{x, y, z}`` dict or ``start_x``-style columns."""
    raw = record.get(which)
    if isinstance(raw, Mapping):
        values = [raw.get("x"), raw.get("y"), raw.get("z")]
    elif isinstance(raw, (list, tuple)):
        values = list(raw)
    else:
        values = [record.get(f"{which}_{axis}") for axis in "xyz"]
    if len(values) != 3:
        return None
    coords = [_float(v) for v in values]
    if any(c is None for c in coords):
        return None
    return (coords[0], coords[1], coords[2])


def _require_points(record: Mapping[str, Any], label: str) -> Tuple[Point3, Point3]:
    start, end = _point(record, "start"), _point(record, "end")
    if start is None or end is None:
        raise ScheduleError(f"{label} is missing start/end coordinates")
    return start, end


# ----------------- RACEWAYS -----------------

def normalize_tray(record: Mapping[str, Any]) -> RacewaySegment:
    tray_id = _first(record, "tray_id", "id", "tag")
    if tray_id is None:
        raise ScheduleError("Tray record has no id")
    start, end = _require_points(record, f"Tray {tray_id}")
    return RacewaySegment(
        id=str(tray_id),
        kind="tray",
        start=start,
        end=end,
        width=_float(_first(record, "inside_width", "width")) or 0.0,
        height=_float(_first(record, "tray_depth", "height")) or 0.0,
        area=_float(record.get("area")),
        current_fill=_float(record.get("current_fill")) or 0.0,
        allowed_cable_group=record.get("allowed_cable_group") or None,
    )


def split_conduit_tag(record: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(ductbank_id, conduit_id)``; a tag ``DB1-C3`` names both."""
    ductbank_id = _first(record, "ductbank_id", "ductbank")
    conduit_id = _first(record, "conduit_id", "id")
    tag = record.get("tag")
    if ductbank_id is None and tag:
        parts = str(tag).split("-")
        if len(parts) > 1:
            tag_conduit = parts.pop()
            ductbank_id = "-".join(parts)
            if conduit_id is None:
                conduit_id = tag_conduit
    if conduit_id is None and tag:
        conduit_id = tag
    return (
        str(ductbank_id) if ductbank_id is not None else None,
        str(conduit_id) if conduit_id is not None else None,
    )


def conduit_cross_section(record: Mapping[str, Any]) -> Tuple[float, Optional[float]]:
    """Inside diameter and, when the trade size is known, the inside area."""
    conduit_type = _first(record, "type", "conduit_type")
    area = CONDUIT_SPECS.get(conduit_type or "", {}).get(str(record.get("trade_size", "")))
    if area:
        return math.sqrt(4 * area / math.pi), area
    return _float(record.get("diameter")) or 0.0, None


def _conduit_segment(
    record: Mapping[str, Any],
    ductbank_id: Optional[str],
    conduit_id: str,
    start: Point3,
    end: Point3,
) -> RacewaySegment:
    diameter, area = conduit_cross_section(record)
    raceway_id = record.get("tray_id") or (f"{ductbank_id}-{conduit_id}" if ductbank_id else conduit_id)
    return RacewaySegment(
        id=str(raceway_id),
        kind="conduit",
        start=start,
        end=end,
        width=diameter,
        height=diameter,
        area=area,
        current_fill=_float(record.get("current_fill")) or 0.0,
        allowed_cable_group=record.get("allowed_cable_group") or None,
        ductbank_id=ductbank_id,
        conduit_id=conduit_id,
    )


def normalize_conduit(record: Mapping[str, Any]) -> RacewaySegment:
    ductbank_id, conduit_id = split_conduit_tag(record)
    if conduit_id is None:
        raise ScheduleError("Conduit record has no id")
    start, end = _require_points(record, f"Conduit {conduit_id}")
    return _conduit_segment(record, ductbank_id, conduit_id, start, end)


def normalize_ductbank(record: Mapping[str, Any], conduits: Sequence[Mapping[str, Any]]) -> List[RacewaySegment]:
    """Outline segment plus one segment per conduit.

    Conduits without their own geometry run the length of the ductbank.
    """
    ductbank_id = _first(record, "ductbank_id", "id", "tag")
    if ductbank_id is None:
        raise ScheduleError("Ductbank record has no id")
    ductbank_id = str(ductbank_id)
    start, end = _point(record, "start"), _point(record, "end")

    segments = []
    if start is None or end is None:
        logger.warning(f"Ductbank {ductbank_id} has no geometry; skipping its outline")
    else:
        segments.append(RacewaySegment(
            id=ductbank_id,
            kind="ductbank",
            start=start,
            end=end,
            width=_float(record.get("width")) or DEFAULT_DUCTBANK_SIZE,
            height=_float(record.get("height")) or DEFAULT_DUCTBANK_SIZE,
            ductbank_id=ductbank_id,
        ))

    if not conduits:
        logger.warning(f"Ductbank {ductbank_id} has no conduits")
    for conduit in conduits:
        _, conduit_id = split_conduit_tag(conduit)
        if conduit_id is None:
            raise ScheduleError(f"Conduit in ductbank {ductbank_id} has no id")
        c_start, c_end = _point(conduit, "start"), _point(conduit, "end")
        if c_start is None or c_end is None:
            c_start, c_end = start, end
        if c_start is None or c_end is None:
            logger.warning(f"Conduit {conduit_id} in ductbank {ductbank_id} has no geometry; skipped")
            continue
        segments.append(_conduit_segment(conduit, ductbank_id, conduit_id, c_start, c_end))
    return segments


def build_raceway_segments(
    trays: Iterable[Mapping[str, Any]] = (),
    conduits: Iterable[Mapping[str, Any]] = (),
    ductbanks: Iterable[Mapping[str, Any]] = (),
) -> List[RacewaySegment]:
    """Normalize every schedule into one raceway list: trays, ductbanks, then loose conduits."""
    segments = [normalize_tray(t) for t in trays]

    by_ductbank: Dict[str, List[Mapping[str, Any]]] = {}
    loose = []
    for conduit in conduits:
        ductbank_id, _ = split_conduit_tag(conduit)
        if ductbank_id is None:
            loose.append(conduit)
        else:
            by_ductbank.setdefault(ductbank_id, []).append(conduit)

    known_ductbanks = set()
    for ductbank in ductbanks:
        ductbank_id = str(_first(ductbank, "ductbank_id", "id", "tag"))
        known_ductbanks.add(ductbank_id)
        segments.extend(normalize_ductbank(ductbank, by_ductbank.get(ductbank_id, [])))

    # conduits naming a ductbank that is not scheduled still route on their own
    for ductbank_id, members in by_ductbank.items():
        if ductbank_id not in known_ductbanks:
            loose.extend(members)
    segments.extend(normalize_conduit(c) for c in loose)
    return segments


# ----------------- CABLES -----------------

def parse_thickness(value: Any) -> Optional[float]:
    """Thickness in inches; strings may carry an ``mm`` or ``cm`` suffix."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower()
    match = re.match(r"^[-+]?\d*\.?\d+", text)
    if not match:
        return None
    number = float(match.group(0))
    if text.endswith("mm"):
        return number / 25.4
    if text.endswith("cm"):
        return number / 2.54
    return number


def _cable_diameter(record: Mapping[str, Any], label: str) -> float:
    diameter = _float(_first(record, "diameter", "cable_od", "OD", "od"))
    if diameter:
        return diameter

    insulation = parse_thickness(record.get("insulation_thickness"))
    if insulation is None:
        insulation = DEFAULT_INSULATION
        logger.warning(f"Missing insulation thickness for cable {label}; assuming {insulation} in.")
    shield = parse_thickness(record.get("shielding_jacket"))
    if record.get("shielding_jacket") and shield is None:
        logger.warning(f"Unrecognized shielding/jacket value '{record['shielding_jacket']}' for cable {label}; assuming 0 in.")
    logger.warning(f"No diameter for cable {label}; using {DEFAULT_BARE_DIAMETER} in. bare conductor")
    return DEFAULT_BARE_DIAMETER + 2 * (insulation + (shield or 0.0))


def _raceway_ids(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [part for part in re.split(r"[>,\s]+", value) if part]
    return [str(v) for v in value]


def normalize_cable(record: Mapping[str, Any]) -> CableSpec:
    label = _first(record, "tag", "name", "id")
    if label is None:
        raise ScheduleError("Cable record has no tag")
    label = str(label)
    start, end = _require_points(record, f"Cable {label}")

    stored = record.get("route_segments")
    return CableSpec(
        id=label,
        start=start,
        end=end,
        diameter=_cable_diameter(record, label),
        allowed_cable_group=record.get("allowed_cable_group") or None,
        manual_path=record.get("manual_path") or "",
        raceway_ids=_raceway_ids(record.get("raceway_ids")),
        locked=bool(record.get("locked")),
        route_segments=[RouteSegment.from_dict(s) for s in stored] if stored else None,
        start_tag=_first(record, "start_tag", "from_tag"),
        end_tag=_first(record, "end_tag", "to_tag"),
    )
