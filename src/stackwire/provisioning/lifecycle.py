"""
Create and tear down composition resources through the provisioning bridge.

Teardown runs in reverse dependency order: a resource is deleted only after
every resource that depends on it has been deleted. With best-effort
cleanup a failed delete blocks only the resources it depends on; unrelated
resources keep being torn down so teardown cannot deadlock.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog

from stackwire.composition.graph import all_edges
from stackwire.composition.models import Composition
from stackwire.composition.render import render_value
from stackwire.composition.values import (
    ACCOUNT_ID,
    REGION,
    STACK_NAME,
    AttributeRef,
    PseudoParameter,
    Reference,
    iter_references,
    substitute,
)
from stackwire.config import get_settings
from stackwire.core.errors import DanglingBindingError
from stackwire.provisioning.bridge import ProvisioningBridge
from stackwire.provisioning.models import AttemptState, Operation, ProvisioningAttempt

logger = structlog.get_logger()


def pseudo_parameter_values() -> Dict[str, Any]:
    """Pseudo parameter values known from settings (unset ones are omitted)."""
    settings = get_settings()
    values = {
        STACK_NAME.name: settings.stack_name,
        REGION.name: settings.aws_region,
        ACCOUNT_ID.name: settings.aws_account_id,
    }
    return {name: value for name, value in values.items() if value is not None}


def request_properties(
    composition: Composition,
    logical_id: str,
    pseudo: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """JSON-ready properties of a resource for the worker.

    Known pseudo parameters are filled in; any other leftover placeholder is
    rendered as an intrinsic function.
    """
    values = pseudo_parameter_values() if pseudo is None else pseudo

    def replace(ref: Reference) -> Any:
        if isinstance(ref, PseudoParameter) and ref.name in values:
            return values[ref.name]
        return ref

    return render_value(substitute(composition.specs[logical_id].properties, replace))


async def create(
    composition: Composition,
    bridge: ProvisioningBridge,
    logical_id: str,
    timeout: Optional[float] = None,
) -> ProvisioningAttempt:
    """Provision one resource whose creation is delegated to the worker.

    Raises:
        DanglingBindingError: If the resource still waits on another
            resource's attributes
    """
    spec = composition.specs.get(logical_id)
    if spec is None:
        raise DanglingBindingError(f"Unknown resource: {logical_id}", logical_ids=[logical_id])
    waiting = sorted(
        {ref.producer_id for _, ref in iter_references(spec.properties) if isinstance(ref, AttributeRef)}
    )
    if waiting:
        raise DanglingBindingError(
            f"{logical_id} cannot be created before {', '.join(waiting)}",
            logical_ids=[logical_id, *waiting],
        )
    return await bridge.provision(
        logical_id, Operation.CREATE, request_properties(composition, logical_id), timeout=timeout
    )


@dataclass
class TeardownReport:
    """Outcome of a teardown run."""

    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    attempts: Dict[str, ProvisioningAttempt] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed and not self.skipped

    def state(self, logical_id: str) -> Optional[AttemptState]:
        attempt = self.attempts.get(logical_id)
        return attempt.state if attempt else None


async def teardown(
    composition: Composition,
    bridge: ProvisioningBridge,
    logical_ids: Optional[Iterable[str]] = None,
    timeout: Optional[float] = None,
    best_effort: Optional[bool] = None,
) -> TeardownReport:
    """Delete resources through the bridge, dependents first.

    Args:
        composition: Composition the resources belong to
        bridge: Bridge used for the Delete requests
        logical_ids: Resources to delete (defaults to all)
        timeout: Per-attempt timeout
        best_effort: Keep deleting unrelated resources after a failure
            (defaults to ``STACKWIRE_BEST_EFFORT_DELETE``)
    """
    if best_effort is None:
        best_effort = get_settings().best_effort_delete
    timeout = bridge.resolve_timeout(timeout)

    targets = list(logical_ids) if logical_ids is not None else list(composition.specs)
    unknown = [i for i in targets if i not in composition.specs]
    if unknown:
        raise DanglingBindingError(f"Unknown resource(s): {', '.join(unknown)}", logical_ids=unknown)

    target_set = set(targets)
    # Deleting X must wait for everything created after X
    blockers: Dict[str, set[str]] = {i: set() for i in targets}
    for src, dst in all_edges(composition):
        if src in target_set and dst in target_set and src != dst:
            blockers[src].add(dst)

    report = TeardownReport()
    done: Dict[str, asyncio.Future[bool]] = {
        i: asyncio.get_running_loop().create_future() for i in targets
    }
    halted = False

    async def delete_one(logical_id: str) -> None:
        nonlocal halted
        ok = False
        try:
            outcomes = [await done[b] for b in sorted(blockers[logical_id])]
            if not all(outcomes) or halted:
                report.skipped.append(logical_id)
                logger.warning(
                    "teardown_skipped",
                    logical_id=logical_id,
                    blocked_by=sorted(b for b in blockers[logical_id] if b not in report.deleted),
                )
                return

            try:
                attempt = bridge.begin(
                    logical_id, Operation.DELETE, request_properties(composition, logical_id)
                )
                report.attempts[logical_id] = attempt
                try:
                    await bridge.send(attempt)
                except Exception as exc:
                    # The bridge already recorded the attempt as Failed
                    logger.error("teardown_dispatch_failed", logical_id=logical_id, error=str(exc))
                else:
                    await bridge.wait(attempt, timeout)
            except Exception:
                report.failed.append(logical_id)
                if not best_effort:
                    halted = True
                raise

            ok = attempt.state is AttemptState.SUCCEEDED
            if ok:
                report.deleted.append(logical_id)
            else:
                report.failed.append(logical_id)
                if not best_effort:
                    halted = True
        finally:
            # Dependents of this resource are waiting on it
            done[logical_id].set_result(ok)

    # Every node settles before an unexpected error is raised
    results = await asyncio.gather(*(delete_one(i) for i in targets), return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        logger.error("teardown_aborted", error=str(errors[0]), failed=report.failed)
        raise errors[0]

    logger.info(
        "teardown_finished",
        deleted=len(report.deleted),
        failed=report.failed,
        skipped=report.skipped,
        best_effort=best_effort,
    )
    return report
