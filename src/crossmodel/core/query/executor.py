"""Plan execution."""

import asyncio
import logging
from typing import Any

from crossmodel.core.interfaces import RowLimitProvider, SourceDriver
from crossmodel.core.models.metadata import TypeTag
from crossmodel.core.models.schemas import ColumnDescriptor, TabularResult
from crossmodel.core.query.exceptions import PartialExecutionFailure, QueryEngineError
from crossmodel.core.query.expressions import evaluate
from crossmodel.core.query.merge import (
    Row,
    comparison_holds,
    group_rows,
    hash_join,
    page_rows,
    sort_rows,
    where_matches,
)
from crossmodel.core.query.plan import (
    CompiledPlan,
    FederatedPlan,
    Fragment,
    OutputColumn,
    SingleSourcePlan,
)

logger = logging.getLogger(__name__)


class ExecutionCoordinator:
    """Runs compiled plans against live data sources.

    Single-source plans are one round trip. Federated plans run one task per
    data source concurrently (fragments of the same source run in order on
    that source's task), then merge and post-process the rows in memory.

    Args:
        driver: Fetches rows from data sources.
        row_limits: Tenant row limits used by ``execute_for_tenant``.
    """

    def __init__(
        self,
        driver: SourceDriver,
        row_limits: RowLimitProvider | None = None,
    ) -> None:
        self.driver = driver
        self.row_limits = row_limits

    async def execute_for_tenant(
        self,
        plan: CompiledPlan,
        tenant_id: str | int | None,
    ) -> TabularResult:
        """Execute a plan under the tenant's row limit."""
        limit = self.row_limits.row_limit(tenant_id) if self.row_limits is not None else -1
        return await self.execute(plan, tenant_row_limit=limit)

    async def execute(self, plan: CompiledPlan, tenant_row_limit: int = -1) -> TabularResult:
        """Execute a compiled plan.

        Args:
            plan: Plan from the query compiler.
            tenant_row_limit: Maximum rows to return, applied after every
                other step. ``-1`` means unlimited.

        Returns:
            Rows keyed by output label.

        Raises:
            PartialExecutionFailure: If any sub-query of a federated plan fails.
                No partial result is returned.
            AdapterError: If the single query of a single-source plan fails.
        """
        if isinstance(plan, SingleSourcePlan):
            rows = await self.driver.query(plan.data_source_id, plan.native_query)
            federated = False
        else:
            rows = await self._execute_federated(plan)
            federated = True

        labelled = [_label(row, plan.outputs) for row in rows]
        truncated = 0 <= tenant_row_limit < len(labelled)
        if truncated:
            logger.info(f"Truncating {len(labelled)} rows to tenant limit {tenant_row_limit}")
            labelled = labelled[:tenant_row_limit]

        return TabularResult(
            columns=[
                ColumnDescriptor(name=output.label, type_tag=output.type_tag)
                for output in plan.outputs
            ],
            rows=labelled,
            row_count=len(labelled),
            truncated=truncated,
            federated=federated,
        )

    async def _fetch_fragments(self, plan: FederatedPlan) -> dict[str, list[Row]]:
        by_source: dict[int, list[Fragment]] = {}
        for fragment in plan.fragments:
            by_source.setdefault(fragment.data_source_id, []).append(fragment)

        results: dict[str, list[Row]] = {}

        async def run_source(source_id: int, fragments: list[Fragment]) -> None:
            for fragment in fragments:
                logger.debug(
                    f"Fetching fragment {fragment.fragment_id} from data source {source_id}"
                )
                try:
                    rows = await self.driver.query(source_id, fragment.native_query)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    raise PartialExecutionFailure(source_id, e) from e
                results[fragment.fragment_id] = rows

        tasks = [
            asyncio.create_task(run_source(source_id, fragments), name=f"source-{source_id}")
            for source_id, fragments in by_source.items()
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return results

    async def _execute_federated(self, plan: FederatedPlan) -> list[Row]:
        results = await self._fetch_fragments(plan)
        fragments = {fragment.fragment_id: fragment for fragment in plan.fragments}

        seed = fragments[plan.seed_fragment_id]
        rows = results[seed.fragment_id]
        fields = list(seed.native_query.fields)
        types: dict[str, TypeTag] = dict(seed.slot_types)

        for step in plan.merge_steps:
            fragment = fragments[step.fragment_id]
            numeric = [
                types.get(left, TypeTag.UNKNOWN).is_number
                or fragment.slot_types.get(right, TypeTag.UNKNOWN).is_number
                for left, right in zip(step.left_slots, step.right_slots, strict=True)
            ]
            rows = hash_join(
                rows,
                results[fragment.fragment_id],
                step.left_slots,
                step.right_slots,
                step.join_type,
                fields,
                fragment.native_query.fields,
                numeric,
            )
            fields.extend(fragment.native_query.fields)
            types.update(fragment.slot_types)

        for comparison in plan.join_filters:
            numeric = (
                types.get(comparison.left_slot, TypeTag.UNKNOWN).is_number
                or types.get(comparison.right_slot, TypeTag.UNKNOWN).is_number
            )
            rows = [row for row in rows if comparison_holds(row, comparison, numeric)]

        if plan.where:
            rows = [row for row in rows if where_matches(row, plan.where)]

        if plan.computed:
            for row in rows:
                for computed in plan.computed:
                    try:
                        row[computed.slot] = evaluate(computed.expression, row.get)
                    except (ValueError, TypeError) as e:
                        raise QueryEngineError(
                            f"Cannot compute {computed.slot}: {e}"
                        ) from e

        if plan.is_grouped:
            rows = group_rows(rows, plan.group_by, plan.aggregates)
        if plan.order_by:
            rows = sort_rows(rows, plan.order_by)
        rows = page_rows(rows, plan.offset, plan.limit)

        logger.debug(f"Federated plan produced {len(rows)} rows")
        return rows


def _label(row: dict[str, Any], outputs: list[OutputColumn]) -> dict[str, Any]:
    return {output.label: row.get(output.slot) for output in outputs}
