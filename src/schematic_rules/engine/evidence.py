"""Evidence search for compiled rule atoms.

Each evaluator takes a fully resolved atom plus an :class:`EvidenceContext`
(the instance, its resolved pins and the anchor PinUID) and returns a
:class:`Finding`. Topology problems become ``violated`` findings with a note,
never exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..model.component import ComponentModel, PinRole
from ..resolver import ResolvedPins
from ..rules.atoms import CapRequirement, PullDirection, PullRequirement
from ..schematic.queries import GraphQuery, GraphTopologyError
from ..units import Magnitude
from .config import EvaluationConfig
from .diagnostics import Verdict

logger = logging.getLogger(__name__)

CAPACITOR_CATEGORY = "capacitor"
RESISTOR_CATEGORY = "resistor"

_PULL_ROLES = {
    PullDirection.UP: PinRole.POWER,
    PullDirection.DOWN: PinRole.GROUND,
}


@dataclass(frozen=True)
class Finding:
    verdict: Verdict
    summary: str
    net: str | None = None


@dataclass(frozen=True)
class EvidenceContext:
    """Where a rule is anchored and what it may look at."""

    query: GraphQuery
    instance_index: int
    model: ComponentModel
    pins: ResolvedPins
    uid: str
    config: EvaluationConfig

    @property
    def ref(self) -> str:
        return self.query.instance(self.instance_index).ref

    def anchor(self) -> str:
        return f"{self.ref} {self.pins.describe(self.uid)}"

    def net_of(self, uid: str) -> int | None:
        return self.query.net_of(self.instance_index, uid, self.pins)


def evaluate_cap(atom: CapRequirement, ctx: EvidenceContext) -> Finding:
    """Sum capacitance on the anchor net and compare it to the target."""
    required = atom.value.render()
    try:
        net = ctx.net_of(ctx.uid)
    except GraphTopologyError as exc:
        return Finding(Verdict.VIOLATED, f"{exc}; {required} required")
    if net is None:
        return Finding(Verdict.VIOLATED, f"{ctx.anchor()} is not connected to any net; {required} required")

    net_name = ctx.query.net_name(net)
    total = Decimal(0)
    counted: list[str] = []
    excluded: list[str] = []
    for index in ctx.query.components_on_net(net):
        if index == ctx.instance_index or not ctx.query.matches(index, CAPACITOR_CATEGORY):
            continue
        instance = ctx.query.instance(index)
        if instance.value is None:
            excluded.append(f"{instance.ref} (no value)")
            continue
        if atom.purpose is not None and not _purpose_matches(instance.purpose, atom.purpose.value, ctx.config):
            excluded.append(f"{instance.ref} (purpose {instance.purpose or 'untagged'})")
            continue
        if atom.max_dist is not None:
            distance = ctx.query.distance(ctx.instance_index, index)
            if distance is None:
                if ctx.config.unknown_distance_policy == "reject":
                    excluded.append(f"{instance.ref} (unknown distance)")
                    continue
            elif distance > atom.max_dist.value:
                excluded.append(f"{instance.ref} ({Magnitude(distance, 'm').render()} away)")
                continue
        total += instance.value.value
        counted.append(f"{instance.ref} {instance.value.render()}")

    found = Magnitude(total, "F").render() if counted else "no capacitance"
    summary = f"{found} found, {required} required on net {net_name} at {ctx.anchor()}"
    if counted:
        summary += f"; counted {', '.join(counted)}"
    if excluded:
        summary += f"; excluded {', '.join(excluded)}"
    satisfied = bool(counted) and atom.value.satisfied_by(total, ctx.config.capacitance_tolerance)
    return Finding(Verdict.SATISFIED if satisfied else Verdict.VIOLATED, summary, net_name)


def _purpose_matches(tag: str | None, wanted: str, config: EvaluationConfig) -> bool:
    if tag is None:
        return config.untagged_capacitors_match_any_purpose
    return tag == wanted


def evaluate_pull(atom: PullRequirement, ctx: EvidenceContext) -> Finding:
    """Look for a resistor between the anchor net and the target pin's net."""
    required = atom.resistance.render()
    target = ctx.model.pin(atom.target)
    if target is None:
        return Finding(
            Verdict.INVALID_TARGET,
            f"pull target {atom.target} is not a pin of {ctx.model.component}",
        )
    expected_role = _PULL_ROLES[atom.direction]
    if target.role is not expected_role:
        return Finding(
            Verdict.INVALID_TARGET,
            f"pull-{atom.direction.value} target {atom.target} has role {target.role.value}, "
            f"expected {expected_role.value}",
        )

    try:
        net = ctx.net_of(ctx.uid)
        target_net = ctx.net_of(atom.target)
    except GraphTopologyError as exc:
        return Finding(Verdict.VIOLATED, f"{exc}; pull-{atom.direction.value} {required} required")
    if net is None:
        return Finding(Verdict.VIOLATED, f"{ctx.anchor()} is not connected to any net")
    net_name = ctx.query.net_name(net)
    if target_net is None:
        return Finding(
            Verdict.VIOLATED,
            f"pull target {ctx.ref} {ctx.pins.describe(atom.target)} is not connected to any net",
            net_name,
        )
    target_name = ctx.query.net_name(target_net)
    if target_net == net:
        return Finding(
            Verdict.VIOLATED,
            f"{ctx.anchor()} is tied directly to {target_name}; expected a {required} pull-{atom.direction.value}",
            net_name,
        )

    rejected: list[str] = []
    for index in ctx.query.components_on_net(net):
        if index == ctx.instance_index or not ctx.query.matches(index, RESISTOR_CATEGORY):
            continue
        if target_net not in ctx.query.nets_of_instance(index):
            continue
        resistor = ctx.query.instance(index)
        if resistor.value is None:
            rejected.append(f"{resistor.ref} (no value)")
            continue
        if atom.resistance.satisfied_by(resistor.value.value, ctx.config.resistance_tolerance):
            return Finding(
                Verdict.SATISFIED,
                f"{resistor.ref} {resistor.value.render()} bridges {net_name} to {target_name}; "
                f"{required} required at {ctx.anchor()}",
                net_name,
            )
        rejected.append(f"{resistor.ref} {resistor.value.render()}")

    if rejected:
        summary = (
            f"{', '.join(rejected)} between {net_name} and {target_name} do not satisfy {required} "
            f"at {ctx.anchor()}"
        )
    else:
        summary = f"no resistor between {net_name} and {target_name}; {required} pull-{atom.direction.value} required at {ctx.anchor()}"
    logger.debug("Pull requirement failed on %s: %s", ctx.anchor(), summary)
    return Finding(Verdict.VIOLATED, summary, net_name)
