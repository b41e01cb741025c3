from __future__ import annotations

import pytest

from privacyhub.core.errors import (
    DomainValidationError,
    HierarchyCycleError,
    HierarchyDepthError,
    NotFoundOrForbiddenError,
)
from privacyhub.domain.schemas import ExternalOrganizationCreate, RecipientCreate, RecipientUpdate
from privacyhub.persistence.db import SessionLocal
from privacyhub.persistence.repos import external_organizations, recipients
from privacyhub.services.hierarchy import HIERARCHY_PROCESSOR_CHAIN
from privacyhub.tests.utils import factories


@pytest.mark.asyncio
async def test_sub_processor_under_processor_is_accepted() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        processor = await factories.create_recipient(session, org.id, name="Cloud")
        sub = await factories.create_recipient(
            session, org.id, name="Backup", type="SUB_PROCESSOR", parent_recipient_id=processor.id
        )
        assert sub.parent_recipient_id == processor.id
        assert sub.hierarchy_type == HIERARCHY_PROCESSOR_CHAIN
        assert processor.hierarchy_type is None
        assert await recipients.calculate_hierarchy_depth(session, sub.id, org.id) == 1


@pytest.mark.asyncio
async def test_disallowed_parent_type_is_rejected() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        provider = await factories.create_recipient(session, org.id, name="Payroll", type="SERVICE_PROVIDER")
        org_id, provider_id = org.id, provider.id
        with pytest.raises(DomainValidationError) as excinfo:
            await factories.create_recipient(
                session, org_id, name="Sub", type="SUB_PROCESSOR", parent_recipient_id=provider_id
            )
    assert "SUB_PROCESSOR cannot have a SERVICE_PROVIDER parent" in str(excinfo.value)


@pytest.mark.asyncio
async def test_processor_cannot_have_parent() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        root = await factories.create_recipient(session, org.id, name="Root")
        org_id, root_id = org.id, root.id
        with pytest.raises(DomainValidationError):
            await factories.create_recipient(session, org_id, name="Nested", parent_recipient_id=root_id)


@pytest.mark.asyncio
async def test_parent_from_another_organization_reads_as_not_found() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        foreign = await factories.create_recipient(session, other.id, name="Foreign")
        org_id, foreign_id = org.id, foreign.id
        with pytest.raises(NotFoundOrForbiddenError):
            await factories.create_recipient(
                session, org_id, name="Sub", type="SUB_PROCESSOR", parent_recipient_id=foreign_id
            )


@pytest.mark.asyncio
async def test_reparenting_onto_a_descendant_is_a_cycle() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        root = await factories.create_recipient(session, org.id, name="Root")
        first = await factories.create_recipient(
            session, org.id, name="First", type="SUB_PROCESSOR", parent_recipient_id=root.id
        )
        second = await factories.create_recipient(
            session, org.id, name="Second", type="SUB_PROCESSOR", parent_recipient_id=first.id
        )
        org_id, root_id, first_id, second_id = org.id, root.id, first.id, second.id

        assert await recipients.check_circular_reference(session, root_id, second_id, org_id)
        assert await recipients.check_circular_reference(session, first_id, second_id, org_id)
        assert not await recipients.check_circular_reference(session, second_id, root_id, org_id)
        assert await recipients.check_circular_reference(session, first_id, first_id, org_id)
        with pytest.raises(HierarchyCycleError):
            await recipients.update_recipient(
                session, first_id, org_id, RecipientUpdate(parent_recipient_id=second_id)
            )

    async with SessionLocal() as session:
        stored = await recipients.get_recipient(session, first_id, org_id)
        assert stored is not None
        assert stored.parent_recipient_id != second_id


@pytest.mark.asyncio
async def test_sub_processor_depth_ceiling() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        parent = await factories.create_recipient(session, org.id, name="Root")
        org_id = org.id
        chain = [parent.id]
        for level in range(1, 6):
            node = await factories.create_recipient(
                session, org_id, name=f"Level {level}", type="SUB_PROCESSOR", parent_recipient_id=chain[-1]
            )
            chain.append(node.id)
        depths = [await recipients.calculate_hierarchy_depth(session, node_id, org_id) for node_id in chain]
        assert depths == [0, 1, 2, 3, 4, 5]
        parent_id = chain[-1]

        with pytest.raises(HierarchyDepthError) as excinfo:
            await factories.create_recipient(
                session, org_id, name="Level 6", type="SUB_PROCESSOR", parent_recipient_id=parent_id
            )
    assert "exceeds maximum of 5" in str(excinfo.value)


async def _sub_processor_chain(session, organization_id: str, prefix: str, length: int) -> list[str]:
    root = await factories.create_recipient(session, organization_id, name=prefix)
    chain = [root.id]
    for level in range(1, length):
        node = await factories.create_recipient(
            session,
            organization_id,
            name=f"{prefix}{level}",
            type="SUB_PROCESSOR",
            parent_recipient_id=chain[-1],
        )
        chain.append(node.id)
    return chain


@pytest.mark.asyncio
async def test_reparenting_a_subtree_checks_its_deepest_node() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        org_id = org.id
        left = await _sub_processor_chain(session, org_id, "A", 5)
        right = await _sub_processor_chain(session, org_id, "B", 5)

        # B1 alone would land at depth 5, but B4 would land at depth 8.
        with pytest.raises(HierarchyDepthError) as excinfo:
            await recipients.update_recipient(
                session, right[1], org_id, RecipientUpdate(parent_recipient_id=left[4])
            )
        assert "exceeds maximum of 5" in str(excinfo.value)

    async with SessionLocal() as session:
        stored = await recipients.get_recipient(session, right[1], org_id)
        assert stored is not None
        assert stored.parent_recipient_id == right[0]
        assert await recipients.calculate_hierarchy_depth(session, right[4], org_id) == 4
        report = await recipients.check_recipient_hierarchy_health(session, org_id)
        assert report.depth_violations == []

        # B3 and its child B4 fit under A2 at depths 3 and 4.
        moved = await recipients.update_recipient(
            session, right[3], org_id, RecipientUpdate(parent_recipient_id=left[2])
        )
        assert moved.parent_recipient_id == left[2]
        assert await recipients.calculate_hierarchy_depth(session, right[4], org_id) == 4


@pytest.mark.asyncio
async def test_type_change_must_keep_children_valid() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        processor = await factories.create_recipient(session, org.id, name="Cloud")
        await factories.create_recipient(
            session, org.id, name="Backup", type="SUB_PROCESSOR", parent_recipient_id=processor.id
        )
        org_id, processor_id = org.id, processor.id

        with pytest.raises(DomainValidationError) as excinfo:
            await recipients.update_recipient(
                session, processor_id, org_id, RecipientUpdate(type="INTERNAL_DEPARTMENT")
            )
        assert "INTERNAL_DEPARTMENT cannot be the parent of SUB_PROCESSOR" in str(excinfo.value)

    async with SessionLocal() as session:
        stored = await recipients.get_recipient(session, processor_id, org_id)
        assert stored is not None
        assert stored.type == "PROCESSOR"


@pytest.mark.asyncio
async def test_descendant_tree_and_ancestor_chain() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        root = await factories.create_recipient(session, org.id, name="Root")
        left = await factories.create_recipient(
            session, org.id, name="Left", type="SUB_PROCESSOR", parent_recipient_id=root.id
        )
        right = await factories.create_recipient(
            session, org.id, name="Right", type="SUB_PROCESSOR", parent_recipient_id=root.id
        )
        leaf = await factories.create_recipient(
            session, org.id, name="Leaf", type="SUB_PROCESSOR", parent_recipient_id=left.id
        )

        tree = await recipients.get_descendant_tree(session, root.id, org.id)
        depths = {entry.node.id: entry.depth for entry in tree}
        assert depths == {left.id: 1, right.id: 1, leaf.id: 2}

        shallow = await recipients.get_descendant_tree(session, root.id, org.id, max_depth=1)
        assert {entry.node.id for entry in shallow} == {left.id, right.id}

        children = await recipients.get_direct_children(session, root.id, org.id)
        assert {child.id for child in children} == {left.id, right.id}

        chain = await recipients.get_ancestor_chain(session, leaf.id, org.id)
        assert [node.id for node in chain] == [left.id, root.id]
        assert await recipients.get_ancestor_chain(session, root.id, org.id) == []


@pytest.mark.asyncio
async def test_hierarchy_reads_do_not_cross_tenants() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        root = await factories.create_recipient(session, org.id, name="Root")
        await factories.create_recipient(
            session, org.id, name="Child", type="SUB_PROCESSOR", parent_recipient_id=root.id
        )
        assert await recipients.get_descendant_tree(session, root.id, other.id) == []
        assert await recipients.get_direct_children(session, root.id, other.id) == []


@pytest.mark.asyncio
async def test_deleting_a_parent_leaves_an_orphan() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        root = await factories.create_recipient(session, org.id, name="Root")
        child = await factories.create_recipient(
            session, org.id, name="Child", type="SUB_PROCESSOR", parent_recipient_id=root.id
        )
        org_id, root_id, child_id = org.id, root.id, child.id
        await recipients.delete_recipient(session, root_id, org_id)

    async with SessionLocal() as session:
        orphaned = await recipients.find_orphaned_recipients(session, org_id)
        assert [node.id for node in orphaned] == [child_id]
        report = await recipients.check_recipient_hierarchy_health(session, org_id)
        assert [node.id for node in report.orphaned] == [child_id]
        assert report.cycles == []
        assert report.depth_violations == []
        # Neither recipient references an external organization.
        assert [node.id for node in report.unlinked] == [child_id]
        assert report.total_issues == 2


@pytest.mark.asyncio
async def test_recipient_statistics() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        root = await factories.create_recipient(session, org.id, name="Root")
        await factories.create_recipient(
            session, org.id, name="Child", type="SUB_PROCESSOR", parent_recipient_id=root.id
        )
        await factories.create_recipient(session, org.id, name="HR", type="INTERNAL_DEPARTMENT")
        stats = await recipients.get_recipient_statistics(session, org.id)
    assert stats.total == 3
    assert stats.active == 3
    assert stats.by_type == {"PROCESSOR": 1, "SUB_PROCESSOR": 1, "INTERNAL_DEPARTMENT": 1}
    assert stats.with_parent == 1
    assert stats.orphaned == 0
    assert stats.unlinked == 2


@pytest.mark.asyncio
async def test_external_organization_links_are_tenant_scoped() -> None:
    async with SessionLocal() as session:
        org = await factories.create_organization(session)
        other = await factories.create_organization(session)
        vendor = await external_organizations.create_external_organization(
            session, org.id, ExternalOrganizationCreate(legal_name="Vendor GmbH")
        )
        foreign_vendor = await external_organizations.create_external_organization(
            session, other.id, ExternalOrganizationCreate(legal_name="Elsewhere Ltd")
        )
        org_id, vendor_id, foreign_vendor_id = org.id, vendor.id, foreign_vendor.id

        linked = await recipients.create_recipient(
            session,
            org_id,
            RecipientCreate(name="Hosting", type="PROCESSOR", external_organization_id=vendor_id),
        )
        linked_id = linked.id
        assert await recipients.find_unlinked_recipients(session, org_id) == []

        with pytest.raises(NotFoundOrForbiddenError):
            await recipients.create_recipient(
                session,
                org_id,
                RecipientCreate(name="Spoofed", type="PROCESSOR", external_organization_id=foreign_vendor_id),
            )

    async with SessionLocal() as session:
        await external_organizations.delete_external_organization(session, vendor_id, org_id)

    async with SessionLocal() as session:
        unlinked = await recipients.find_unlinked_recipients(session, org_id)
        assert [node.id for node in unlinked] == [linked_id]
