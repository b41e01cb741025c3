from __future__ import annotations

import argparse
import asyncio
import json
import sys

from privacyhub.core.logging import configure_logging
from privacyhub.persistence.db import SessionLocal
from privacyhub.persistence.repos import organizations, recipients


async def _report(organization_id: str, as_json: bool) -> int:
    async with SessionLocal() as session:
        organization = await organizations.get_organization(session, organization_id)
        if organization is None:
            print(f"organization_not_found id={organization_id}", file=sys.stderr)
            return 2
        report = await recipients.check_recipient_hierarchy_health(session, organization_id)
    if as_json:
        payload = {
            "organization_id": organization_id,
            "orphaned": [node.id for node in report.orphaned],
            "unlinked": [node.id for node in report.unlinked],
            "depth_violations": [
                {
                    "id": violation.node.id,
                    "current_depth": violation.current_depth,
                    "max_allowed": violation.max_allowed,
                }
                for violation in report.depth_violations
            ],
            "cycles": report.cycles,
            "total_issues": report.total_issues,
        }
        print(json.dumps(payload, indent=2))
    else:
        print(f"organization_id={organization_id}")
        for node in report.orphaned:
            print(f"orphaned id={node.id} name={node.name!r} type={node.type}")
        for node in report.unlinked:
            print(f"unlinked id={node.id} name={node.name!r} type={node.type}")
        for violation in report.depth_violations:
            print(
                f"depth_violation id={violation.node.id} depth={violation.current_depth} "
                f"max={violation.max_allowed}"
            )
        for node_id in report.cycles:
            print(f"cycle id={node_id}")
        print(f"total_issues={report.total_issues}")
    # Non-zero exit lets CI jobs fail on data-quality regressions.
    return 1 if report.total_issues else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Report recipient hierarchy data-quality findings")
    parser.add_argument("organization_id")
    parser.add_argument("--json", action="store_true", dest="as_json")
    args = parser.parse_args()
    configure_logging()
    raise SystemExit(asyncio.run(_report(args.organization_id, args.as_json)))


if __name__ == "__main__":
    main()
