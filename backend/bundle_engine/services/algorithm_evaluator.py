"""Clinical algorithm scoring over contact-assessment item codes.

Raw assessment items are remapped onto contact-assessment (CA) item codes and
fed to the decision-tree engine. The mapping table and the derivation rules
for items with no direct source are public so they can be inspected and
tested: changing either changes clinical scoring.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from bundle_engine.services.decision_tree import DecisionTreeEngine
from bundle_engine.utils.numbers import to_int

logger = logging.getLogger(__name__)


# CA item code -> raw assessment key. None means derived (see derive_unavailable_item).
CA_TO_HC_MAP: dict[str, str | None] = {
    # Section C: preliminary screener
    "C1": "iB3a",  # decision making
    "C2a": "adl_bathing",
    "C2b": "adl_transfer",
    "C2c": "adl_hygiene",
    "C2d": "adl_dressing_lower",
    "C2e": "adl_bed_mobility",
    "C3": "dyspnea",
    "C4": None,  # self-reported health
    "C5a": "mood_sad_expressions",
    "C5b": "mood_unrealistic_fears",
    "C5c": "mood_crying",
    "C6a": None,  # unstable conditions
    # Section D: extended evaluation
    "D1": None,  # change in decision making
    "D3a": "iadl_meal_prep",
    "D3b": "iadl_housework",
    "D3c": "iadl_medications",
    "D3d": None,  # stair use
    "D4": None,  # ADL decline
    "D7c": "edema",
    "D7d": "vomiting",
    "D8a": "pain_frequency",
    "D8b": "pain_intensity",
    "D10a": None,  # decreased intake
    "D10b": "weight_loss",
    "D14b": "extensive_iv",
    "D14e": "clinical_wound",
    "D15": None,  # last hospital stay
    "D16": None,  # emergency visits
    "D19b": "caregiver_stress",
    "B2c": None,  # palliative referral
}


@dataclass(frozen=True, slots=True)
class AlgorithmSpec:
    """One scored algorithm: file name, result key, cast and safe default."""

    key: str
    algorithm: str
    cast: Callable[[Any], Any]
    default: Any


ALGORITHMS: tuple[AlgorithmSpec, ...] = (
    AlgorithmSpec("self_reliance_index", "self_reliance_index", bool, False),
    AlgorithmSpec("assessment_urgency", "assessment_urgency", int, 1),
    AlgorithmSpec("service_urgency", "service_urgency", int, 1),
    AlgorithmSpec("rehabilitation", "rehabilitation", int, 1),
    AlgorithmSpec("personal_support", "personal_support", int, 1),
    AlgorithmSpec("distressed_mood", "distressed_mood", int, 0),
    AlgorithmSpec("pain", "pain_scale", int, 0),
    AlgorithmSpec("chess_ca", "chess_ca", int, 0),
)

DEFAULT_SCORES: dict[str, Any] = {spec.key: spec.default for spec in ALGORITHMS}


def derive_unavailable_item(
    code: str, raw_items: Mapping[str, Any], context: Mapping[str, Any]
) -> int:
    """Value for a CA item that has no direct raw source."""
    chess = raw_items.get("chess")
    if code == "C4":
        # Self-reported health tracks instability
        return 3 if chess is not None and to_int(chess) >= 3 else 1
    if code == "C6a":
        return 1 if chess is not None and to_int(chess) >= 3 else 0
    if code == "D15":
        return 1 if context.get("has_recent_hospital_stay") else 0
    if code == "D16":
        return 1 if context.get("has_recent_er_visit") else 0
    if code == "B2c":
        return 1 if context.get("is_palliative") else 0
    # D1, D3d, D4 and D10a have no source at all
    return 0


class AlgorithmEvaluator:
    """Runs every CA algorithm independently, substituting defaults on failure."""

    def __init__(self, engine: DecisionTreeEngine | None = None):
        self.engine = engine or DecisionTreeEngine()

    def map_to_ca_input(
        self, raw_items: Mapping[str, Any], context: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        context = context or {}
        ca_input: dict[str, Any] = {}
        for code, raw_key in CA_TO_HC_MAP.items():
            if raw_key is None:
                ca_input[code] = derive_unavailable_item(code, raw_items, context)
            else:
                value = raw_items.get(raw_key)
                ca_input[code] = 0 if value is None else value
        return ca_input

    def evaluate_all_algorithms(
        self, raw_items: Mapping[str, Any], context: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Score every algorithm; a failing algorithm never blocks its siblings.

        Args:
            raw_items: Raw assessment responses keyed by source item name
            context: Extra signals (recent hospital stay / ER visit, palliative)

        Returns:
            Mapping of score key (e.g. ``personal_support``) to value
        """
        ca_input = self.map_to_ca_input(raw_items, context)
        return {spec.key: self._evaluate_one(spec, ca_input) for spec in ALGORITHMS}

    def _evaluate_one(self, spec: AlgorithmSpec, ca_input: Mapping[str, Any]) -> Any:
        try:
            return spec.cast(self.engine.evaluate(spec.algorithm, ca_input))
        except Exception as e:
            logger.warning("%s evaluation failed, using default %r: %s", spec.algorithm, spec.default, e)
            return spec.default

    def item_mapping(self) -> dict[str, str | None]:
        return dict(CA_TO_HC_MAP)

    def available_algorithms(self) -> dict[str, dict[str, Any]]:
        return self.engine.available_algorithms()
