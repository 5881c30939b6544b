"""Service for compiling and executing query descriptors."""

import asyncio
import logging

from sqlalchemy.orm import Session

from crossmodel.core.adapters import AdapterRegistry
from crossmodel.core.catalog import SchemaCatalogReader
from crossmodel.core.interfaces import RowLimitProvider, SourceDriver
from crossmodel.core.models import QueryDescriptor, TableMetadata, TableRef, TabularResult
from crossmodel.core.query.compiler import QueryCompiler
from crossmodel.core.query.exceptions import CompilationError
from crossmodel.core.query.executor import ExecutionCoordinator
from crossmodel.core.query.plan import CompiledPlan
from crossmodel.core.repositories import DataSourceRepository
from crossmodel.core.services.drivers import AdapterSourceDriver
from crossmodel.core.services.tenant import ConfiguredRowLimits

logger = logging.getLogger(__name__)


def _table_refs(descriptor: QueryDescriptor) -> list[TableRef]:
    refs = [descriptor.root_table]
    for join in descriptor.join_conditions:
        refs.extend([join.left.table_ref(), join.right.table_ref()])
    refs.extend(descriptor.table_aliases.values())
    return refs


class QueryService:
    """Compiles descriptors against live metadata and executes the plans.

    Args:
        session: Database session for data source lookups.
        driver: Fetch capability. Defaults to the adapter-backed driver.
        row_limits: Tenant row limits. Defaults to the configured limits.
    """

    def __init__(
        self,
        session: Session,
        driver: SourceDriver | None = None,
        row_limits: RowLimitProvider | None = None,
    ) -> None:
        self.sources = DataSourceRepository(session)
        self.driver = driver or AdapterSourceDriver(session)
        self.reader = SchemaCatalogReader(self.driver)
        self.coordinator = ExecutionCoordinator(
            self.driver,
            row_limits if row_limits is not None else ConfiguredRowLimits(),
        )

    def _source_ids(self, descriptor: QueryDescriptor) -> tuple[list[int], list[int]]:
        """Split the sources to read into pinned ones and ones searched.

        Returns:
            Sources named by the descriptor, then the other active sources
            when some table has no ``data_source_id``.
        """
        refs = _table_refs(descriptor)
        pinned = sorted({ref.data_source_id for ref in refs if ref.data_source_id is not None})
        known = {source.id for source in self.sources.get_by_ids(pinned)}
        for source_id in pinned:
            if source_id not in known:
                raise CompilationError(
                    f"Unknown data source {source_id}",
                    data_source_id=source_id,
                )

        searched: list[int] = []
        if any(ref.data_source_id is None for ref in refs):
            # Unpinned tables may live in any active source
            searched = [s.id for s in self.sources.get_active() if s.id not in known]
        return pinned, searched

    async def _metadata(self, pinned: list[int], searched: list[int]) -> list[TableMetadata]:
        # A searched source that fails only hides its tables
        introspected = await asyncio.gather(
            *(self.reader.introspect(source_id) for source_id in pinned),
            *(self.reader.introspect_or_empty(source_id) for source_id in searched),
        )
        return [table for tables in introspected for table in tables]

    async def compile_async(self, descriptor: QueryDescriptor) -> CompiledPlan:
        """Compile a descriptor against freshly read metadata.

        Raises:
            CompilationError: If the descriptor is invalid.
            MergeSemanticsError: If the cross-source joins cannot be merged.
            AdapterError: If a pinned source cannot be introspected.
        """
        pinned, searched = self._source_ids(descriptor)
        source_ids = pinned + searched
        tables = await self._metadata(pinned, searched)
        dialects = {
            source.id: AdapterRegistry.get_dialect(source.source_type)
            for source in self.sources.get_by_ids(source_ids)
            if AdapterRegistry.is_registered(source.source_type)
        }
        plan = QueryCompiler(tables, dialects).compile(descriptor)
        logger.info(f"Compiled {plan.kind} plan over data sources {source_ids}")
        return plan

    def compile(self, descriptor: QueryDescriptor) -> CompiledPlan:
        return asyncio.run(self.compile_async(descriptor))

    def compile_and_execute(
        self,
        descriptor: QueryDescriptor,
        tenant_id: str | int | None = None,
    ) -> TabularResult:
        """Compile a descriptor and execute it under the tenant's row limit.

        Raises:
            CompilationError: If the descriptor is invalid.
            MergeSemanticsError: If the cross-source joins cannot be merged.
            PartialExecutionFailure: If a federated sub-query fails.
            AdapterError: If a source fails during introspection or a
                single-source query.
        """

        async def _run() -> TabularResult:
            plan = await self.compile_async(descriptor)
            return await self.coordinator.execute_for_tenant(plan, tenant_id)

        return asyncio.run(_run())
