"""Main QueryService interface for MonitorForge."""

import logging
from threading import Event

from pydantic import ValidationError

from monitorforge.credentials import DatasourceInfo, InstanceManager, get_default_project
from monitorforge.errors import BatchError, CredentialError, QueryExecutionError, QueryParseError
from monitorforge.executor import (
    QueryExecutor,
    SloExecutor,
    TimeSeriesFilterExecutor,
    TimeSeriesQueryExecutor,
    check_cancelled,
)
from monitorforge.models.frame import DataResponse, Frame, FrameMeta, QueryDataResponse
from monitorforge.models.query import (
    ANNOTATION_QUERY,
    GCE_DEFAULT_PROJECT_QUERY,
    METRIC_QUERY_TYPE,
    SLO_QUERY_TYPE,
    CloudMonitoringQuery,
    DataQuery,
    QueryModel,
    TimeRange,
)
from monitorforge.models.settings import QueryDataRequest

logger = logging.getLogger(__name__)


class QueryService:
    """Entry point: takes a batch of queries, returns frames per ref id."""

    def __init__(self, instance_manager: InstanceManager | None = None) -> None:
        """Initialize the query service.

        Args:
            instance_manager: Resolves datasource settings to ready-to-use
                instances. A default one (no jwt token source) is created
                when not given.
        """
        self.instance_manager = instance_manager or InstanceManager()

    def query_data(
        self, request: QueryDataRequest, cancel: Event | None = None
    ) -> QueryDataResponse:
        """Run a batch of queries.

        the first query's "type" decides between the reserved query kinds
        and a regular batch. regular batches run every query independently:
        one failing query never stops its siblings. setting cancel stops the
        batch before the next api call and drops whatever was collected.

        Raises:
            BatchError: the batch is unusable as a whole (no queries, a
                payload that doesn't decode, unknown query type, ...).
            QueryCancelledError: cancel was set while the batch ran.
        """
        if not request.queries:
            raise BatchError("query contains no queries")

        try:
            model = QueryModel.model_validate(request.queries[0].payload)
        except ValidationError as e:
            raise BatchError(f"could not unmarshal query json: {e}") from e

        ds = self.instance_manager.get(request.datasource)

        if model.type == ANNOTATION_QUERY:
            return self.execute_annotation_query(request, ds, cancel)
        if model.type == GCE_DEFAULT_PROJECT_QUERY:
            return self.get_gce_default_project(request, ds)
        return self.execute_time_series_query(request, ds, cancel)

    def execute_time_series_query(
        self, request: QueryDataRequest, ds: DatasourceInfo, cancel: Event | None = None
    ) -> QueryDataResponse:
        executors = self.build_query_executors(request)
        result = QueryDataResponse()

        for executor in executors:
            check_cancelled(cancel, f"query {executor.ref_id}")
            query_res = DataResponse()
            result.responses[executor.ref_id] = query_res
            try:
                response, executed_query = executor.run(ds, cancel)
                executor.parse_response(query_res, response, executed_query)
            except (QueryExecutionError, QueryParseError) as e:
                logger.warning("Query %s failed: %s", executor.ref_id, e)
                query_res.error = str(e)

        return result

    def execute_annotation_query(
        self, request: QueryDataRequest, ds: DatasourceInfo, cancel: Event | None = None
    ) -> QueryDataResponse:
        """Run the first query of the batch and turn its points into annotations."""
        executors = self.build_query_executors(request)
        executor = executors[0]
        query = CloudMonitoringQuery.from_payload(request.queries[0].payload)

        result = QueryDataResponse()
        query_res = DataResponse()
        result.responses[executor.ref_id] = query_res
        try:
            response, _ = executor.run(ds, cancel)
            executor.parse_to_annotations(
                query_res, response, query.metric_query.title, query.metric_query.text
            )
        except (QueryExecutionError, QueryParseError) as e:
            logger.warning("Annotation query %s failed: %s", executor.ref_id, e)
            query_res.error = str(e)
        return result

    def get_gce_default_project(
        self, request: QueryDataRequest, ds: DatasourceInfo
    ) -> QueryDataResponse:
        ref_id = request.queries[0].ref_id
        try:
            project = get_default_project(ds)
        except CredentialError as e:
            raise BatchError(
                f"failed to retrieve default project from GCE metadata server, error: {e}"
            ) from e

        frame = Frame(ref_id=ref_id, meta=FrameMeta(custom={"defaultProject": project}))
        return QueryDataResponse(responses={ref_id: DataResponse(frames=[frame])})

    def build_query_executors(self, request: QueryDataRequest) -> list[QueryExecutor]:
        """Classify every query of the batch and build its executor.

        all queries share the time range of the first one.

        Raises:
            BatchError: a payload doesn't decode, has a malformed filter or
                an unknown queryType.
        """
        time_range = request.queries[0].time_range
        executors: list[QueryExecutor] = []

        for data_query in request.queries:
            try:
                query = CloudMonitoringQuery.from_payload(data_query.payload)
            except (ValidationError, ValueError) as e:
                raise BatchError(f"could not unmarshal CloudMonitoringQuery json: {e}") from e

            try:
                executors.append(self._build_executor(data_query, query, time_range))
            except ValueError as e:
                raise BatchError(f"query {data_query.ref_id}: {e}") from e

        return executors

    def _build_executor(
        self, data_query: DataQuery, query: CloudMonitoringQuery, time_range: TimeRange
    ) -> QueryExecutor:
        ref_id = data_query.ref_id
        interval_ms = data_query.interval_ms

        if query.query_type == METRIC_QUERY_TYPE:
            if query.metric_query.is_mql:
                return TimeSeriesQueryExecutor.for_metric_query(
                    ref_id, query.metric_query, time_range, interval_ms, data_query.max_data_points
                )
            return TimeSeriesFilterExecutor.for_metric_query(
                ref_id, query.metric_query, time_range, interval_ms
            )
        if query.query_type == SLO_QUERY_TYPE:
            return SloExecutor.for_slo_query(ref_id, query.slo_query, time_range, interval_ms)

        raise BatchError(f"unrecognized query type {query.query_type!r}")
