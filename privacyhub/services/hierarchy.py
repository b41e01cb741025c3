from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.core.config import get_settings
from privacyhub.core.errors import (
    DomainValidationError,
    HierarchyCycleError,
    HierarchyDepthError,
    NotFoundOrForbiddenError,
)
from privacyhub.domain.models import Recipient
from privacyhub.persistence.guards import get_owned, tenant_predicate


logger = logging.getLogger(__name__)


HIERARCHY_PROCESSOR_CHAIN = "PROCESSOR_CHAIN"
HIERARCHY_ORGANIZATIONAL = "ORGANIZATIONAL"


@dataclass(frozen=True)
class HierarchyRule:
    # Structural rules for one node type inside a self-referential hierarchy.
    can_have_parent: bool
    allowed_parent_types: tuple[str, ...] = ()
    max_depth: int = 0
    hierarchy_type: str | None = None
    # Advisory: nodes of this type are expected to have a parent.
    requires_parent: bool = False
    # Advisory: nodes of this type are expected to reference an external entity.
    requires_external_link: bool = True
    required_agreements: tuple[str, ...] = ()


@dataclass(frozen=True)
class HierarchySpec:
    name: str
    model: Any
    label: str
    rules: dict[str, HierarchyRule]
    parent_attr: str = "parent_id"
    type_attr: str = "type"
    link_attr: str | None = None

    def parent_of(self, node) -> str | None:
        return getattr(node, self.parent_attr)

    def type_of(self, node) -> str:
        return getattr(node, self.type_attr)

    def rule_for(self, node_type: str) -> HierarchyRule:
        rule = self.rules.get(node_type)
        if rule is None:
            raise DomainValidationError(f"Unsupported {self.label} type: {node_type}")
        return rule


@dataclass(frozen=True)
class HierarchyNode:
    node: Any
    # 1 = direct child of the tree root, 2 = grandchild, ...
    depth: int


@dataclass(frozen=True)
class DepthViolation:
    node: Any
    current_depth: int
    max_allowed: int


@dataclass
class HierarchyHealthReport:
    orphaned: list[Any] = field(default_factory=list)
    unlinked: list[Any] = field(default_factory=list)
    depth_violations: list[DepthViolation] = field(default_factory=list)
    # Ids of nodes whose parent chain revisits a node.
    cycles: list[str] = field(default_factory=list)

    @property
    def total_issues(self) -> int:
        return len(self.orphaned) + len(self.unlinked) + len(self.depth_violations) + len(self.cycles)


RECIPIENT_HIERARCHY_RULES: dict[str, HierarchyRule] = {
    "PROCESSOR": HierarchyRule(can_have_parent=False, required_agreements=("DPA",)),
    "SUB_PROCESSOR": HierarchyRule(
        can_have_parent=True,
        allowed_parent_types=("PROCESSOR", "SUB_PROCESSOR"),
        max_depth=5,
        hierarchy_type=HIERARCHY_PROCESSOR_CHAIN,
        requires_parent=True,
    ),
    "JOINT_CONTROLLER": HierarchyRule(
        can_have_parent=False, required_agreements=("JOINT_CONTROLLER_AGREEMENT",)
    ),
    "SERVICE_PROVIDER": HierarchyRule(can_have_parent=False),
    "SEPARATE_CONTROLLER": HierarchyRule(can_have_parent=False),
    "PUBLIC_AUTHORITY": HierarchyRule(can_have_parent=False),
    "INTERNAL_DEPARTMENT": HierarchyRule(
        can_have_parent=True,
        allowed_parent_types=("INTERNAL_DEPARTMENT",),
        max_depth=10,
        hierarchy_type=HIERARCHY_ORGANIZATIONAL,
        requires_external_link=False,
    ),
}

RECIPIENT_HIERARCHY = HierarchySpec(
    name="recipients",
    model=Recipient,
    label="Recipient",
    rules=RECIPIENT_HIERARCHY_RULES,
    parent_attr="parent_recipient_id",
    type_attr="type",
    link_attr="external_organization_id",
)


def hierarchy_type_for(spec: HierarchySpec, node_type: str) -> str | None:
    return spec.rule_for(node_type).hierarchy_type


async def get_direct_children(
    session: AsyncSession, spec: HierarchySpec, node_id: str, organization_id: str
) -> list[Any]:
    model = spec.model
    result = await session.execute(
        select(model)
        .where(
            getattr(model, spec.parent_attr) == node_id,
            tenant_predicate(model, organization_id),
        )
        .order_by(model.created_at, model.id)
    )
    return list(result.scalars().all())


async def get_descendant_tree(
    session: AsyncSession,
    spec: HierarchySpec,
    node_id: str,
    organization_id: str,
    max_depth: int | None = None,
) -> list[HierarchyNode]:
    """Return every descendant of ``node_id`` annotated with its depth.

    Traversal is breadth-first, one query per level, and stops at
    ``max_depth`` levels. A node seen twice means the stored chain contains a
    cycle; it is logged and not expanded again, so the walk always ends.
    """
    limit = get_settings().hierarchy_default_max_depth if max_depth is None else max_depth
    model = spec.model
    parent_column = getattr(model, spec.parent_attr)
    visited = {node_id}
    frontier = [node_id]
    nodes: list[HierarchyNode] = []
    depth = 0
    while frontier and depth < limit:
        depth += 1
        result = await session.execute(
            select(model)
            .where(parent_column.in_(frontier), tenant_predicate(model, organization_id))
            .order_by(model.created_at, model.id)
        )
        next_frontier: list[str] = []
        for child in result.scalars().all():
            if child.id in visited:
                logger.warning(
                    "hierarchy_cycle_detected hierarchy=%s node=%s", spec.name, child.id
                )
                continue
            visited.add(child.id)
            nodes.append(HierarchyNode(node=child, depth=depth))
            next_frontier.append(child.id)
        frontier = next_frontier
    return nodes


async def _walk_ancestors(
    session: AsyncSession, spec: HierarchySpec, node_id: str, organization_id: str
) -> tuple[list[Any], bool]:
    # Iterative parent walk with a visited set; returns (chain, cycle_detected).
    node = await get_owned(session, spec.model, node_id, organization_id)
    if node is None:
        return [], False
    max_walk = get_settings().hierarchy_max_walk
    chain: list[Any] = []
    visited = {node.id}
    parent_id = spec.parent_of(node)
    while parent_id:
        if parent_id in visited:
            logger.warning("hierarchy_cycle_detected hierarchy=%s node=%s", spec.name, parent_id)
            return chain, True
        if len(chain) >= max_walk:
            logger.warning("hierarchy_walk_truncated hierarchy=%s node=%s", spec.name, node_id)
            break
        parent = await get_owned(session, spec.model, parent_id, organization_id)
        if parent is None:
            break
        chain.append(parent)
        visited.add(parent.id)
        parent_id = spec.parent_of(parent)
    return chain, False


async def get_ancestor_chain(
    session: AsyncSession, spec: HierarchySpec, node_id: str, organization_id: str
) -> list[Any]:
    # Immediate parent first, root last; empty for roots and unknown nodes.
    chain, _cycle = await _walk_ancestors(session, spec, node_id, organization_id)
    return chain


async def check_circular_reference(
    session: AsyncSession,
    spec: HierarchySpec,
    node_id: str,
    candidate_parent_id: str,
    organization_id: str,
) -> bool:
    # True means assigning candidate_parent_id as the parent of node_id would close a loop.
    if node_id == candidate_parent_id:
        return True
    chain, cycle = await _walk_ancestors(session, spec, candidate_parent_id, organization_id)
    if cycle:
        return True
    return any(ancestor.id == node_id for ancestor in chain)


async def calculate_hierarchy_depth(
    session: AsyncSession, spec: HierarchySpec, node_id: str, organization_id: str
) -> int:
    chain = await get_ancestor_chain(session, spec, node_id, organization_id)
    return len(chain)


async def validate_parent_assignment(
    session: AsyncSession,
    spec: HierarchySpec,
    *,
    node_type: str,
    parent_id: str | None,
    organization_id: str,
    node_id: str | None = None,
) -> None:
    """Reject a parent assignment before it is persisted.

    Checks run in order: the node type may have a parent, the parent exists
    in the same organization, the parent type is allowed, the assignment does
    not close a cycle, and the resulting depth stays within the type ceiling.

    When ``node_id`` names an existing node, its direct children must still
    accept ``node_type`` as a parent type and every node of its subtree must
    stay within its own depth ceiling at the new position.
    """
    rule = spec.rule_for(node_type)
    if node_id is not None:
        await _validate_children_accept(session, spec, node_id, node_type, organization_id)
    if not parent_id:
        if node_id is not None:
            await _validate_subtree_depth(session, spec, node_id, 0, organization_id)
        return
    if not rule.can_have_parent:
        raise DomainValidationError(f"{node_type} {spec.label.lower()}s cannot have a parent")
    parent = await get_owned(session, spec.model, parent_id, organization_id)
    if parent is None:
        raise NotFoundOrForbiddenError(spec.label, parent_id)
    parent_type = spec.type_of(parent)
    if parent_type not in rule.allowed_parent_types:
        allowed = ", ".join(rule.allowed_parent_types)
        raise DomainValidationError(
            f"{node_type} cannot have a {parent_type} parent. Allowed parent types: {allowed}"
        )
    if node_id is not None and await check_circular_reference(
        session, spec, node_id, parent_id, organization_id
    ):
        raise HierarchyCycleError(
            f"Assigning {parent_id} as parent of {node_id} would create a circular reference"
        )
    parent_depth = await calculate_hierarchy_depth(session, spec, parent_id, organization_id)
    if parent_depth + 1 > rule.max_depth:
        raise HierarchyDepthError(
            f"Hierarchy depth {parent_depth + 1} exceeds maximum of {rule.max_depth} for {node_type}"
        )
    if node_id is not None:
        await _validate_subtree_depth(session, spec, node_id, parent_depth + 1, organization_id)


async def _validate_children_accept(
    session: AsyncSession, spec: HierarchySpec, node_id: str, node_type: str, organization_id: str
) -> None:
    # A type change must not strand existing children under a disallowed parent type.
    for child in await get_direct_children(session, spec, node_id, organization_id):
        child_type = spec.type_of(child)
        child_rule = spec.rules.get(child_type)
        if child_rule is not None and node_type not in child_rule.allowed_parent_types:
            raise DomainValidationError(
                f"{node_type} cannot be the parent of {child_type} {spec.label.lower()} {child.id}"
            )


async def _validate_subtree_depth(
    session: AsyncSession, spec: HierarchySpec, node_id: str, node_depth: int, organization_id: str
) -> None:
    # Descendants move with their root, so each lands at node_depth + its relative depth.
    tree = await get_descendant_tree(
        session, spec, node_id, organization_id, max_depth=get_settings().hierarchy_max_walk
    )
    for entry in tree:
        child_type = spec.type_of(entry.node)
        child_rule = spec.rules.get(child_type)
        if child_rule is None:
            continue
        depth = node_depth + entry.depth
        if depth > child_rule.max_depth:
            raise HierarchyDepthError(
                f"Hierarchy depth {depth} exceeds maximum of {child_rule.max_depth} "
                f"for {child_type} {entry.node.id}"
            )


async def find_orphaned_nodes(
    session: AsyncSession, spec: HierarchySpec, organization_id: str
) -> list[Any]:
    # Nodes whose type expects a parent but have none.
    types = [name for name, rule in spec.rules.items() if rule.requires_parent]
    if not types:
        return []
    model = spec.model
    result = await session.execute(
        select(model)
        .where(
            tenant_predicate(model, organization_id),
            getattr(model, spec.type_attr).in_(types),
            getattr(model, spec.parent_attr).is_(None),
        )
        .order_by(model.created_at.desc(), model.id.desc())
    )
    return list(result.scalars().all())


async def find_unlinked_nodes(
    session: AsyncSession, spec: HierarchySpec, organization_id: str
) -> list[Any]:
    # Nodes whose type expects an external link but lack one.
    if spec.link_attr is None:
        return []
    types = [name for name, rule in spec.rules.items() if rule.requires_external_link]
    model = spec.model
    result = await session.execute(
        select(model)
        .where(
            tenant_predicate(model, organization_id),
            getattr(model, spec.type_attr).in_(types),
            getattr(model, spec.link_attr).is_(None),
        )
        .order_by(model.created_at.desc(), model.id.desc())
    )
    return list(result.scalars().all())


async def check_hierarchy_health(
    session: AsyncSession, spec: HierarchySpec, organization_id: str
) -> HierarchyHealthReport:
    """Scan one organization's hierarchy for data-quality findings.

    Depths and cycles are computed from a single in-memory parent map of the
    organization's nodes. Findings are advisory; nothing is repaired.
    """
    report = HierarchyHealthReport(
        orphaned=await find_orphaned_nodes(session, spec, organization_id),
        unlinked=await find_unlinked_nodes(session, spec, organization_id),
    )
    model = spec.model
    result = await session.execute(
        select(model)
        .where(tenant_predicate(model, organization_id))
        .order_by(model.created_at, model.id)
    )
    nodes = list(result.scalars().all())
    parents = {node.id: spec.parent_of(node) for node in nodes}
    for node in nodes:
        if not spec.parent_of(node):
            continue
        visited = {node.id}
        depth = 0
        current = parents.get(node.id)
        cyclic = False
        while current and current in parents:
            if current in visited:
                cyclic = True
                break
            visited.add(current)
            depth += 1
            current = parents[current]
        if cyclic:
            report.cycles.append(node.id)
            continue
        rule = spec.rules.get(spec.type_of(node))
        if rule is not None and depth > rule.max_depth:
            report.depth_violations.append(
                DepthViolation(node=node, current_depth=depth, max_allowed=rule.max_depth)
            )
    if report.total_issues:
        logger.info(
            "hierarchy_health hierarchy=%s organization_id=%s issues=%s",
            spec.name,
            organization_id,
            report.total_issues,
        )
    return report
