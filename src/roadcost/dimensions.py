"""
Derive material take-offs from an intervention's own text.

Used when the standards mapping yields no usable quantities.  Each category has
a fixed formula combining dimensions extracted from the observation (or the
chainage range, where allowed) with engineering constants.  When a dimension
cannot be extracted a typical default is substituted; every substitution is
logged and returned as an assumption so it can be carried into the rationale
and the validation findings.
"""

from __future__ import annotations

import enum
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .models import Intervention, MaterialRequirement

logger = logging.getLogger(__name__)

_NUM = r"(?<![\d.])(\d+(?:\.\d+)?)"
_METRES = r"\s*(?:m|meters?|metres?)\b(?![²³])"
_NOT_CROSS_DIMENSION = r"(?!\s*(?:wide|width|in\s+width|per\s+lane|for\s+each\s+lane|deep|depth|high|height|tall))"
_APPROX = r"(?:about|approx(?:imately|\.)?|around|nearly|~)"
_AREA_UNIT = r"\s*(?:sq\.?\s*m(?:t|etres?|eters?)?\b|m²|m2\b|square\s+met(?:er|re)s?\b)"

LENGTH_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(rf"for\s+(?:{_APPROX}\s*)?{_NUM}{_METRES}{_NOT_CROSS_DIMENSION}", re.IGNORECASE),
    re.compile(rf"{_APPROX}\s*{_NUM}{_METRES}{_NOT_CROSS_DIMENSION}", re.IGNORECASE),
    re.compile(rf"{_NUM}{_METRES}\s+near", re.IGNORECASE),
    re.compile(rf"{_NUM}{_METRES}{_NOT_CROSS_DIMENSION}", re.IGNORECASE),
)
CHAINAGE_PATTERN = re.compile(
    r"(\d+)\s*\+\s*(\d+(?:\.\d+)?)\s*(?:to|-|–|—)\s*(\d+)\s*\+\s*(\d+(?:\.\d+)?)",
    re.IGNORECASE,
)
AREA_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(rf"area\s+(?:of\s+)?{_APPROX}?\s*{_NUM}{_AREA_UNIT}", re.IGNORECASE),
    re.compile(rf"{_NUM}{_AREA_UNIT}", re.IGNORECASE),
)
AREA_EACH_PATTERN = re.compile(r"^\s*(?:each|per\s+(?:pothole|patch|location|spot))\b", re.IGNORECASE)
AREA_COUNT_PATTERN = re.compile(
    r"(?<![\d.])(\d+)\s+(?:nos\.?\s+)?(?:potholes?|patch(?:es)?|locations?|spots?|depressions?)\b",
    re.IGNORECASE,
)
DEPTH_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(rf"{_NUM}\s*mm\s+depth", re.IGNORECASE),
    re.compile(rf"depth\s+(?:of\s+)?{_APPROX}?\s*{_NUM}\s*mm", re.IGNORECASE),
    re.compile(rf"{_NUM}\s*mm\s+deep", re.IGNORECASE),
    re.compile(rf"{_NUM}\s*mm\b", re.IGNORECASE),
)
WIDTH_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(rf"{_NUM}\s*m\s+width", re.IGNORECASE),
    re.compile(rf"width\s+(?:of\s+)?{_NUM}\s*m\b", re.IGNORECASE),
    re.compile(rf"{_NUM}\s*m\s+wide", re.IGNORECASE),
)
PER_LANE_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(rf"{_NUM}\s*m\s+width\s+for\s+each\s+lane\s+on\s+(\d+)\s+lanes?", re.IGNORECASE),
    re.compile(rf"{_NUM}\s*m\s+(?:width\s+)?(?:per|for\s+each)\s+lane.*?(\d+)\s+lanes?", re.IGNORECASE),
)

MAX_LENGTH_M = 10_000
MAX_CHAINAGE_LENGTH_M = 100_000
MAX_AREA_SQM = 10_000
MAX_DEPTH_MM = 1_000
MAX_WIDTH_M = 100

# Road marking (thermoplastic)
DEFAULT_MARKING_LENGTH_M = 100.0
EDGE_LINE_WIDTH_M = 0.15
CENTRE_LINE_WIDTH_M = 0.10
EDGE_LINES = 2
CENTRE_LINES = 1
MARKING_THICKNESS_M = 0.003
THERMOPLASTIC_DENSITY_KG_CUM = 2400
GLASS_BEADS_KG_PER_SQM = 0.4
PRIMER_L_PER_SQM = 0.1

# Pedestrian crossing
DEFAULT_CROSSING_WIDTH_M = 4.0
CROSSING_LENGTH_M = 3.0
ZEBRA_PAINTED_FRACTION = 0.5

# Road studs
DEFAULT_STUD_LENGTH_M = 100.0
STUD_SPACING_M = 10.0
STUD_ADHESIVE_KG = 0.5

# Pothole repair
DEFAULT_POTHOLE_AREA_SQM = 1.0
DEFAULT_POTHOLE_DEPTH_M = 0.05
COMPACTION_FACTOR = 1.1
TACK_COAT_KG_PER_SQM = 0.25

# Road signs: size -> sheeting area (sqm)
SIGN_SHEETING_SQM = {"600mm": 0.28, "900mm": 0.81, "1200mm": 1.44}
SIGN_FOOTING_CUM = 0.1

# Guardrail
DEFAULT_GUARDRAIL_LENGTH_M = 50.0
GUARDRAIL_BEAM_LENGTH_M = 4.0
GUARDRAIL_POST_SPACING_M = 2.0
BOLT_SETS_PER_POST = 2

# Chevrons
CHEVRON_SPACING_M = 20.0

# Speed humps
DEFAULT_HUMP_WIDTH_M = 3.5
ANCHOR_BOLTS_PER_HUMP = 10
TAPE_M_PER_HUMP = 2

# Footpath
DEFAULT_FOOTPATH_LENGTH_M = 50.0
DEFAULT_FOOTPATH_WIDTH_M = 1.5
SAND_BEDDING_FACTOR = 0.15

# Drainage
DEFAULT_DRAIN_LENGTH_M = 50.0
DRAIN_TRENCH_WIDTH_M = 0.3
DRAIN_TRENCH_DEPTH_M = 0.5


def _first_match(patterns: Sequence[re.Pattern[str]], text: str, lower: float, upper: float) -> Optional[float]:
    for pattern in patterns:
        for match in pattern.finditer(text):
            value = float(match.group(1))
            if lower < value < upper:
                return value
    return None


def extract_length(observation: str) -> Optional[float]:
    """Return a length in metres stated in the observation text."""
    if not observation:
        return None
    return _first_match(LENGTH_PATTERNS, observation, 0, MAX_LENGTH_M)


def extract_length_from_chainage(chainage: str) -> Optional[float]:
    """Return ``|end - start|`` in metres for an ``A+B to C+D`` chainage range."""
    if not chainage:
        return None
    match = CHAINAGE_PATTERN.search(chainage)
    if not match:
        return None
    start = float(match.group(1)) * 1000 + float(match.group(2))
    end = float(match.group(3)) * 1000 + float(match.group(4))
    length = abs(end - start)
    if 0 < length < MAX_CHAINAGE_LENGTH_M:
        return length
    return None


def extract_area(observation: str) -> Optional[float]:
    """Return the total area in square metres.

    ``"2 potholes ~1 m² each"`` yields 2.0: an area qualified by "each" is
    multiplied by the stated count of potholes/patches/locations.
    """
    if not observation:
        return None
    for pattern in AREA_PATTERNS:
        for match in pattern.finditer(observation):
            area = float(match.group(1))
            if not 0 < area < MAX_AREA_SQM:
                continue
            if AREA_EACH_PATTERN.match(observation[match.end():]):
                count_match = AREA_COUNT_PATTERN.search(observation)
                if count_match:
                    count = int(count_match.group(1))
                    if count > 0 and 0 < area * count < MAX_AREA_SQM:
                        area = area * count
            return area
    return None


def extract_depth(observation: str) -> Optional[float]:
    """Return a depth in metres from a millimetre figure in the text."""
    if not observation:
        return None
    depth_mm = _first_match(DEPTH_PATTERNS, observation, 0, MAX_DEPTH_MM)
    if depth_mm is None:
        return None
    return depth_mm / 1000


def extract_width(observation: str) -> Optional[float]:
    if not observation:
        return None
    return _first_match(WIDTH_PATTERNS, observation, 0, MAX_WIDTH_M)


def extract_lane_width(observation: str) -> Optional[Tuple[float, int]]:
    """Return ``(width per lane, lane count)`` from per-lane phrasing."""
    if not observation:
        return None
    for pattern in PER_LANE_PATTERNS:
        match = pattern.search(observation)
        if match:
            per_lane = float(match.group(1))
            lanes = int(match.group(2))
            if per_lane > 0 and lanes > 0:
                return per_lane, lanes
    return None


def extract_count(observation: str, nouns: Sequence[str]) -> Optional[int]:
    if not observation:
        return None
    pattern = re.compile(
        r"(?<![\d.])(\d+)\s+(?:nos\.?\s+)?(?:" + "|".join(nouns) + r")",
        re.IGNORECASE,
    )
    match = pattern.search(observation)
    if match:
        value = int(match.group(1))
        if value > 0:
            return value
    return None


class InterventionCategory(str, enum.Enum):
    MARKING = "marking"
    PEDESTRIAN_CROSSING = "pedestrian_crossing"
    ROAD_STUDS = "road_studs"
    POTHOLE = "pothole"
    ROAD_SIGN = "road_sign"
    GUARDRAIL = "guardrail"
    CHEVRON = "chevron"
    SPEED_HUMP = "speed_hump"
    FOOTPATH = "footpath"
    DRAINAGE = "drainage"
    UNKNOWN = "unknown"


# Checked in order; the first category with a keyword hit wins.
CATEGORY_KEYWORDS: Tuple[Tuple[InterventionCategory, Tuple[str, ...]], ...] = (
    (InterventionCategory.POTHOLE, (r"pot\s*holes?", r"patch(?:ing|\s+repair)", r"pavement\s+condition")),
    (InterventionCategory.PEDESTRIAN_CROSSING, (r"zebra", r"pedestrian\s+crossings?", r"cross\s*walks?")),
    (InterventionCategory.ROAD_STUDS, (r"road\s+studs?", r"\bstuds?\b", r"cat'?s?\s*eyes?", r"raised\s+pavement\s+markers?")),
    (InterventionCategory.CHEVRON, (r"chevrons?",)),
    (InterventionCategory.GUARDRAIL, (r"guard\s*rails?", r"crash\s+barriers?", r"w-?\s*beam", r"safety\s+barriers?")),
    (InterventionCategory.SPEED_HUMP, (r"speed\s+(?:humps?|breakers?|bumps?)", r"rumble\s+strips?")),
    (InterventionCategory.FOOTPATH, (r"foot\s*paths?", r"side\s*walks?", r"walkways?")),
    (InterventionCategory.DRAINAGE, (r"\bdrain(?:age|s)?\b", r"culverts?")),
    (InterventionCategory.ROAD_SIGN, (r"\bsigns?\b", r"signage", r"sign\s*boards?")),
    (InterventionCategory.MARKING, (r"markings?", r"edge\s+lines?", r"cent(?:re|er)\s+lines?", r"lane\s+lines?", r"thermoplastic", r"stop\s+lines?")),
)
_COMPILED_KEYWORDS = tuple(
    (category, tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns))
    for category, patterns in CATEGORY_KEYWORDS
)


def _match_category(text: str) -> Optional[InterventionCategory]:
    if not text:
        return None
    for category, patterns in _COMPILED_KEYWORDS:
        if any(pattern.search(text) for pattern in patterns):
            return category
    return None


def classify(intervention: Intervention) -> InterventionCategory:
    """Derive the formula category once from recommendation, section name and observation."""
    for text in (intervention.recommendation, intervention.section_name, intervention.observation):
        category = _match_category(text)
        if category is not None:
            return category
    return InterventionCategory.UNKNOWN


@dataclass(frozen=True)
class QuantityTakeoff:
    category: InterventionCategory
    materials: Tuple[MaterialRequirement, ...] = ()
    dimensions: Dict[str, float] = field(default_factory=dict)
    assumptions: Tuple[str, ...] = ()

    @property
    def used_defaults(self) -> bool:
        return bool(self.assumptions)


class _Takeoff:
    """Mutable builder used inside the formulas."""

    def __init__(self, category: InterventionCategory) -> None:
        self.category = category
        self.materials: List[MaterialRequirement] = []
        self.dimensions: Dict[str, float] = {}
        self.assumptions: List[str] = []

    def assume(self, message: str) -> None:
        logger.warning("        default => %s: %s", self.category.value, message)
        self.assumptions.append(message)

    def add(self, item_name: str, quantity: float, unit: str, details: str) -> None:
        self.materials.append(
            MaterialRequirement(
                item_name=item_name,
                details=details,
                quantity=quantity,
                unit=unit,
                derivation=f"{self.category.value} formula",
                defaulted=bool(self.assumptions),
            )
        )

    def build(self) -> QuantityTakeoff:
        return QuantityTakeoff(
            category=self.category,
            materials=tuple(self.materials),
            dimensions=dict(self.dimensions),
            assumptions=tuple(self.assumptions),
        )


def _length_for_run(observation: str, chainage: str) -> Optional[float]:
    return extract_length_from_chainage(chainage) or extract_length(observation)


def marking_takeoff(observation: str, chainage: str = "", recommendation: str = "") -> QuantityTakeoff:
    # Chainage digits are never read as a marking length.
    takeoff = _Takeoff(InterventionCategory.MARKING)
    length = extract_length(observation)
    if length is None:
        length = DEFAULT_MARKING_LENGTH_M
        takeoff.assume(f"marking length not stated; {length:g} m assumed")
    edge_area = length * EDGE_LINE_WIDTH_M * EDGE_LINES
    centre_area = length * CENTRE_LINE_WIDTH_M * CENTRE_LINES
    area = round(edge_area + centre_area, 4)
    takeoff.dimensions.update({"length_m": length, "area_sqm": area})
    logger.info(
        "        marking => %gm x (%d edges @%.2fm + %d centre @%.2fm) = %.2f sqm",
        length,
        EDGE_LINES,
        EDGE_LINE_WIDTH_M,
        CENTRE_LINES,
        CENTRE_LINE_WIDTH_M,
        area,
    )
    paint = area * MARKING_THICKNESS_M * THERMOPLASTIC_DENSITY_KG_CUM
    takeoff.add(
        "Thermoplastic Paint",
        round(paint, 2),
        "kg",
        f"For {length:g}m ({EDGE_LINES} edge lines + {CENTRE_LINES} centre line = {area:.2f} sqm), "
        f"3mm thick @ {THERMOPLASTIC_DENSITY_KG_CUM} kg/cum",
    )
    takeoff.add(
        "Glass Beads Type A",
        round(area * GLASS_BEADS_KG_PER_SQM, 2),
        "kg",
        f"Retroreflectivity @ {GLASS_BEADS_KG_PER_SQM} kg/sqm over {area:.2f} sqm",
    )
    takeoff.add("Primer", round(area * PRIMER_L_PER_SQM, 1), "litre", f"Surface preparation @ {PRIMER_L_PER_SQM} L/sqm")
    return takeoff.build()


def pedestrian_crossing_takeoff(observation: str, chainage: str = "", recommendation: str = "") -> QuantityTakeoff:
    takeoff = _Takeoff(InterventionCategory.PEDESTRIAN_CROSSING)
    lane_width = extract_lane_width(observation)
    if lane_width is not None:
        per_lane, lanes = lane_width
        width = per_lane * lanes
        logger.info("        crossing => %gm per lane x %d lanes = %gm", per_lane, lanes, width)
    else:
        width = extract_width(observation)
    if width is None:
        width = DEFAULT_CROSSING_WIDTH_M
        takeoff.assume(f"crossing width not stated; {width:g} m assumed")
    area = round(width * CROSSING_LENGTH_M * ZEBRA_PAINTED_FRACTION, 4)
    takeoff.dimensions.update({"width_m": width, "length_m": CROSSING_LENGTH_M, "area_sqm": area})
    takeoff.add(
        "Pedestrian Crossing Paint",
        round(area * MARKING_THICKNESS_M * THERMOPLASTIC_DENSITY_KG_CUM, 2),
        "kg",
        f"For {width:g}m x {CROSSING_LENGTH_M:g}m zebra crossing ({area:.2f} sqm painted)",
    )
    takeoff.add(
        "Glass Beads Type B",
        round(area * GLASS_BEADS_KG_PER_SQM, 2),
        "kg",
        f"Retroreflectivity @ {GLASS_BEADS_KG_PER_SQM} kg/sqm",
    )
    return takeoff.build()


def road_stud_takeoff(observation: str, chainage: str = "", recommendation: str = "") -> QuantityTakeoff:
    takeoff = _Takeoff(InterventionCategory.ROAD_STUDS)
    length = _length_for_run(observation, chainage)
    if length is None:
        length = DEFAULT_STUD_LENGTH_M
        takeoff.assume(f"stretch length not stated; {length:g} m assumed")
    studs = math.ceil(length / STUD_SPACING_M)
    takeoff.dimensions.update({"length_m": length, "count": float(studs)})
    takeoff.add("Retroreflective Road Studs", studs, "nos", f"For {length:g}m stretch @ {STUD_SPACING_M:g}m spacing")
    takeoff.add(
        "Adhesive for Road Studs",
        round(studs * STUD_ADHESIVE_KG, 2),
        "kg",
        f"Epoxy adhesive @ {STUD_ADHESIVE_KG} kg per stud",
    )
    return takeoff.build()


def pothole_takeoff(observation: str, chainage: str = "", recommendation: str = "") -> QuantityTakeoff:
    takeoff = _Takeoff(InterventionCategory.POTHOLE)
    area = extract_area(observation)
    depth = extract_depth(observation)
    if area is None or depth is None:
        takeoff.assume(
            f"pothole area ({area}) or depth ({depth}) not stated; "
            f"{DEFAULT_POTHOLE_AREA_SQM:g} sqm x {DEFAULT_POTHOLE_DEPTH_M * 1000:g}mm assumed"
        )
        area = DEFAULT_POTHOLE_AREA_SQM
        depth = DEFAULT_POTHOLE_DEPTH_M
    volume = round(area * depth, 6)
    takeoff.dimensions.update({"area_sqm": area, "depth_m": depth, "volume_cum": volume})
    takeoff.add(
        "Cold Mix Asphalt",
        round(volume * COMPACTION_FACTOR, 3),
        "cum",
        f"For {area:g} sqm x {depth * 1000:g}mm depth, compaction factor {COMPACTION_FACTOR}",
    )
    takeoff.add(
        "Tack Coat SS-1 Emulsion",
        round(area * TACK_COAT_KG_PER_SQM, 2),
        "kg",
        f"Surface bonding @ {TACK_COAT_KG_PER_SQM} kg/sqm",
    )
    return takeoff.build()


def _sign_size(observation: str, recommendation: str) -> Optional[str]:
    obs = (observation or "").lower()
    rec = (recommendation or "").lower()
    if "1200mm" in obs or "1200 mm" in obs or "major" in rec:
        return "1200mm"
    if any(term in rec for term in ("speed limit", "no parking", "no entry")):
        return "600mm"
    if "600mm" in obs or "600 mm" in obs or "circular" in obs:
        return "600mm"
    if "900mm" in obs or "900 mm" in obs:
        return "900mm"
    return None


def road_sign_takeoff(observation: str, chainage: str = "", recommendation: str = "") -> QuantityTakeoff:
    takeoff = _Takeoff(InterventionCategory.ROAD_SIGN)
    size = _sign_size(observation, recommendation)
    if size is None:
        size = "900mm"
        takeoff.assume("sign size not stated; 900mm assumed")
    sheeting = SIGN_SHEETING_SQM[size]
    takeoff.dimensions.update({"sheeting_sqm": sheeting, "count": 1.0})
    takeoff.add("Retroreflective Sheeting Type III", sheeting, "sqm", f"High intensity grade for {size} sign")
    plate = "Aluminum Plate 600mm Dia" if size == "600mm" else f"Aluminum Plate {size}"
    takeoff.add(plate, 1, "nos", "2mm thick aluminium substrate")
    takeoff.add("GI Pipe Post 50mm", 1, "nos", "2.5m height galvanized iron post")
    takeoff.add("Concrete for Sign Foundation", SIGN_FOOTING_CUM, "cum", "M20 grade concrete for base")
    return takeoff.build()


def guardrail_takeoff(observation: str, chainage: str = "", recommendation: str = "") -> QuantityTakeoff:
    takeoff = _Takeoff(InterventionCategory.GUARDRAIL)
    length = _length_for_run(observation, chainage)
    if length is None:
        length = DEFAULT_GUARDRAIL_LENGTH_M
        takeoff.assume(f"guardrail length not stated; {length:g} m assumed")
    beams = math.ceil(length / GUARDRAIL_BEAM_LENGTH_M)
    posts = math.ceil(length / GUARDRAIL_POST_SPACING_M)
    takeoff.dimensions.update({"length_m": length})
    takeoff.add("W-Beam Guardrail", beams, "nos", f"{GUARDRAIL_BEAM_LENGTH_M:g}m beams for {length:g}m stretch")
    takeoff.add("Guardrail Post", posts, "nos", f"Steel posts @ {GUARDRAIL_POST_SPACING_M:g}m spacing")
    takeoff.add("Bolts and Fasteners", posts * BOLT_SETS_PER_POST, "set", "Connection hardware")
    return takeoff.build()


def chevron_takeoff(observation: str, chainage: str = "", recommendation: str = "") -> QuantityTakeoff:
    takeoff = _Takeoff(InterventionCategory.CHEVRON)
    boards = extract_count(observation, (r"chevrons?", r"boards?", r"signs?"))
    if boards is None:
        length = _length_for_run(observation, chainage)
        if length is not None:
            boards = math.ceil(length / CHEVRON_SPACING_M)
            takeoff.dimensions["length_m"] = length
        else:
            boards = 1
            takeoff.assume("chevron count and curve length not stated; 1 board assumed")
    takeoff.dimensions["count"] = float(boards)
    takeoff.add("Chevron Board Type III", boards, "nos", "900mm x 600mm with retroreflective sheeting")
    takeoff.add("GI Pipe Post 50mm", boards, "nos", "2.5m height posts")
    takeoff.add("Concrete for Sign Foundation", round(boards * SIGN_FOOTING_CUM, 3), "cum", "M20 grade concrete")
    return takeoff.build()


def speed_hump_takeoff(observation: str, chainage: str = "", recommendation: str = "") -> QuantityTakeoff:
    takeoff = _Takeoff(InterventionCategory.SPEED_HUMP)
    width = extract_width(observation)
    if width is None:
        width = DEFAULT_HUMP_WIDTH_M
        takeoff.assume(f"carriageway width not stated; {width:g} m assumed")
    humps = extract_count(observation, (r"humps?", r"bumps?", r"breakers?"))
    if humps is None:
        humps = 1
        takeoff.assume("hump count not stated; 1 assumed")
    takeoff.dimensions.update({"width_m": width, "count": float(humps)})
    takeoff.add("Speed Hump Kit", humps, "nos", f"Rubber/plastic modular hump, {width:g}m width")
    takeoff.add("Anchor Bolts", humps * ANCHOR_BOLTS_PER_HUMP, "nos", "M12 bolts for fixing")
    takeoff.add("Retroreflective Tape", humps * TAPE_M_PER_HUMP, "m", "Yellow/black chevron marking")
    return takeoff.build()


def footpath_takeoff(observation: str, chainage: str = "", recommendation: str = "") -> QuantityTakeoff:
    takeoff = _Takeoff(InterventionCategory.FOOTPATH)
    length = _length_for_run(observation, chainage)
    if length is None:
        length = DEFAULT_FOOTPATH_LENGTH_M
        takeoff.assume(f"footpath length not stated; {length:g} m assumed")
    width = extract_width(observation)
    if width is None:
        width = DEFAULT_FOOTPATH_WIDTH_M
        takeoff.assume(f"footpath width not stated; {width:g} m assumed")
    area = round(length * width, 2)
    takeoff.dimensions.update({"length_m": length, "width_m": width, "area_sqm": area})
    takeoff.add("Paver Blocks", area, "sqm", f"For {length:g}m x {width:g}m footpath")
    takeoff.add("Sand Bedding", round(area * SAND_BEDDING_FACTOR, 3), "cum", "Bedding layer under pavers")
    takeoff.add("Kerb Stones", round(length * 2, 2), "m", "Both edges")
    return takeoff.build()


def drainage_takeoff(observation: str, chainage: str = "", recommendation: str = "") -> QuantityTakeoff:
    takeoff = _Takeoff(InterventionCategory.DRAINAGE)
    length = _length_for_run(observation, chainage)
    if length is None:
        length = DEFAULT_DRAIN_LENGTH_M
        takeoff.assume(f"drain length not stated; {length:g} m assumed")
    takeoff.dimensions["length_m"] = length
    takeoff.add("RCC Drain 300x300", length, "m", "Reinforced concrete drain")
    takeoff.add("Drain Cover Slab", length, "m", "Precast RCC cover")
    takeoff.add(
        "Excavation",
        round(length * DRAIN_TRENCH_WIDTH_M * DRAIN_TRENCH_DEPTH_M, 2),
        "cum",
        "Trench for drain installation",
    )
    return takeoff.build()


Formula = Callable[[str, str, str], QuantityTakeoff]

FORMULAS: Dict[InterventionCategory, Formula] = {
    InterventionCategory.MARKING: marking_takeoff,
    InterventionCategory.PEDESTRIAN_CROSSING: pedestrian_crossing_takeoff,
    InterventionCategory.ROAD_STUDS: road_stud_takeoff,
    InterventionCategory.POTHOLE: pothole_takeoff,
    InterventionCategory.ROAD_SIGN: road_sign_takeoff,
    InterventionCategory.GUARDRAIL: guardrail_takeoff,
    InterventionCategory.CHEVRON: chevron_takeoff,
    InterventionCategory.SPEED_HUMP: speed_hump_takeoff,
    InterventionCategory.FOOTPATH: footpath_takeoff,
    InterventionCategory.DRAINAGE: drainage_takeoff,
}


def derive_materials(
    intervention: Intervention,
    category: Optional[InterventionCategory] = None,
) -> QuantityTakeoff:
    """Build a material take-off for ``intervention`` from its text alone."""
    resolved = category or classify(intervention)
    formula = FORMULAS.get(resolved)
    if formula is None:
        logger.warning("        no quantity formula for %s (%s)", intervention.key, intervention.section_name)
        return QuantityTakeoff(
            category=resolved,
            assumptions=("no quantity formula matches this intervention; no materials derived",),
        )
    return formula(intervention.observation, intervention.chainage, intervention.recommendation)


def needs_derivation(materials: Sequence[MaterialRequirement]) -> bool:
    """True when the list is empty or no entry has a positive quantity."""
    for material in materials:
        quantity = material.quantity
        if quantity is None:
            continue
        try:
            value = float(quantity)
        except (TypeError, ValueError):
            continue
        if math.isfinite(value) and value > 0:
            return False
    return True


__all__ = [
    "InterventionCategory",
    "QuantityTakeoff",
    "FORMULAS",
    "classify",
    "derive_materials",
    "needs_derivation",
    "extract_length",
    "extract_length_from_chainage",
    "extract_area",
    "extract_depth",
    "extract_width",
    "extract_lane_width",
    "extract_count",
]
