from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

CONFIDENCE_LEVELS = ("high", "medium", "low", "very-low")
SEVERITIES = ("critical", "high", "medium", "low")


@dataclass(frozen=True)
class Intervention:
    """A single audited deficiency and its recommended remedy."""

    section_id: str
    section_name: str
    serial_no: int
    chainage: str = ""
    side: str = ""
    road: str = ""
    observation: str = ""
    recommendation: str = ""
    standard_clause: str = ""

    @property
    def location(self) -> str:
        return " ".join(part for part in (self.chainage, self.side, self.road) if part).strip()

    @property
    def key(self) -> str:
        return f"{self.section_id}-{self.serial_no}"


@dataclass(frozen=True)
class MaterialRequirement:
    """Nominal material line as proposed upstream or derived from dimensions."""

    item_name: str
    details: str = ""
    quantity: Optional[float] = None
    unit: str = ""
    derivation: str = ""
    defaulted: bool = False


@dataclass(frozen=True)
class StandardMapping:
    """Governing standard clause and its nominal material specification."""

    section_id: str
    serial_no: int
    recommendation: str = ""
    standard_code: str = ""
    clause: str = ""
    specification: str = ""
    materials: Tuple[MaterialRequirement, ...] = ()

    @property
    def reference(self) -> str:
        parts = [part for part in (self.standard_code, self.clause) if part]
        return " - ".join(parts)


@dataclass(frozen=True)
class NormalizedMaterial:
    requirement: MaterialRequirement
    unit: str
    quantity: float

    @property
    def item_name(self) -> str:
        return self.requirement.item_name


@dataclass(frozen=True)
class SanityAudit:
    """Outcome of the same-unit median comparison for a candidate price."""

    is_valid: bool
    reason: str
    original_price: Optional[float] = None
    median: Optional[float] = None


@dataclass(frozen=True)
class PriceResult:
    """Normalized view of a resolved unit price and where it came from."""

    unit_price: float
    source: str
    confidence: str
    official: bool
    tier: str
    item_name: str = ""
    item_code: Optional[str] = None
    source_url: Optional[str] = None
    specification: Optional[str] = None
    standard_refs: Tuple[str, ...] = ()
    is_valid: bool = True
    original_price: Optional[float] = None
    reason: str = ""
    tiers_attempted: Tuple[str, ...] = ()
    notes: str = ""


@dataclass(frozen=True)
class PricedMaterial:
    material: NormalizedMaterial
    unit_price: float
    source: str
    confidence: str
    official: bool
    item_code: Optional[str] = None
    source_url: Optional[str] = None
    specification: Optional[str] = None
    sanity: Optional[SanityAudit] = None
    notes: str = ""

    @property
    def item_name(self) -> str:
        return self.material.item_name

    @property
    def unit(self) -> str:
        return self.material.unit

    @property
    def quantity(self) -> float:
        return self.material.quantity

    @property
    def total_price(self) -> float:
        return round(self.material.quantity * self.unit_price, 2)


@dataclass(frozen=True)
class Finding:
    severity: str
    code: str
    message: str
    material: Optional[str] = None


@dataclass(frozen=True)
class DroppedMaterial:
    item_name: str
    quantity: object
    unit: str
    cause: str


@dataclass
class InterventionCost:
    intervention: Intervention
    materials: List[PricedMaterial] = field(default_factory=list)
    standard_reference: str = ""
    rationale: str = ""
    assumptions: List[str] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)
    dropped: List[DroppedMaterial] = field(default_factory=list)
    unpriced: List[NormalizedMaterial] = field(default_factory=list)
    narrative_confidence: str = "low"
    derived_quantities: bool = False

    @property
    def total_cost(self) -> float:
        return round(sum(item.total_price for item in self.materials), 2)


@dataclass
class SectionCost:
    section_id: str
    section_name: str
    interventions: List[InterventionCost] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return round(sum(item.total_cost for item in self.interventions), 2)


@dataclass(frozen=True)
class ReviewItem:
    """A material that needs a human decision before the estimate is approved."""

    intervention: str
    item_name: str
    unit: str
    reason: str


@dataclass
class EstimateTotal:
    sections: List[SectionCost] = field(default_factory=list)
    review: List[ReviewItem] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    compliance_score: float = 100.0

    @property
    def total(self) -> float:
        return round(sum(section.total_cost for section in self.sections), 2)

    @property
    def interventions(self) -> List[InterventionCost]:
        return [item for section in self.sections for item in section.interventions]

    @property
    def complete(self) -> bool:
        if self.failures:
            return False
        return not any(item.unpriced for item in self.interventions)
