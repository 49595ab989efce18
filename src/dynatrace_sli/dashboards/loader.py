"""
Dashboard loader.

Resolves the configured dashboard reference and fetches the dashboard:

    NOT_REQUESTED -> SKIPPED               no reference and nothing stored
    RESOLVING     -> SKIPPED               "query" found no KQG dashboard
    VALIDATING    -> FAILED                reference is not a dashboard UUID
    LOADED        -> FAILED                fetch or decode failed
    LOADED        -> UNCHANGED             ParseOnChange and content identical
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog
from pydantic import ValidationError

from dynatrace_sli.clients.dynatrace import DynatraceClient
from dynatrace_sli.clients.models import DashboardList
from dynatrace_sli.context import DeliveryContext
from dynatrace_sli.core.errors import BackendError, DashboardLoadError, InvalidDashboardIDError
from dynatrace_sli.dashboards.models import Dashboard

logger = structlog.get_logger()

DASHBOARD_QUERY = "query"
DASHBOARD_NAME_PREFIX = "kqg;"
PARSE_ON_CHANGE_MARKER = "KQG.QueryBehavior=ParseOnChange"

_UUID_PATTERN = re.compile(
    r"^[a-fA-F0-9]{8}-[a-fA-F0-9]{4}-4[a-fA-F0-9]{3}-[89abAB][a-fA-F0-9]{3}-[a-fA-F0-9]{12}$"
)


class DashboardLoadState(StrEnum):
    NOT_REQUESTED = "not_requested"
    RESOLVING = "resolving"
    VALIDATING = "validating"
    LOADED = "loaded"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class DashboardLoadResult:
    """Outcome of loading a dashboard; dashboard is set when LOADED or UNCHANGED."""

    state: DashboardLoadState
    dashboard_id: str = ""
    dashboard: Dashboard | None = None
    # Canonical JSON of the fetched dashboard, what callers persist for change detection
    content: str = ""
    raw: dict[str, Any] = field(default_factory=dict)


def is_valid_uuid(value: str) -> bool:
    """Check for an 8-4-4-4-12 hex UUID with version 4 and an RFC 4122 variant."""
    return _UUID_PATTERN.match(value) is not None


def find_dashboard(dashboards: DashboardList, context: DeliveryContext) -> str | None:
    """
    Find the KQG dashboard for project, service and stage.

    A dashboard matches when its name starts with "KQG;" and its ;-separated
    segments contain project=, service= and stage= for the context, all
    compared case-insensitively and in any order.
    """
    wanted = [
        f"project={context.project}".lower(),
        f"service={context.service}".lower(),
        f"stage={context.stage}".lower(),
    ]

    for stub in dashboards.dashboards:
        if not stub.name.lower().startswith(DASHBOARD_NAME_PREFIX):
            continue
        segments = {segment.lower() for segment in stub.name.split(";")}
        if all(value in segments for value in wanted):
            return stub.id
    return None


def dashboard_content(raw: dict[str, Any]) -> str:
    return json.dumps(raw, indent=2)


def has_dashboard_changed(raw: dict[str, Any], stored_content: str) -> bool:
    """
    Tell whether a dashboard must be parsed again.

    Without the ParseOnChange marker a dashboard always counts as changed.
    With it, the fetched dashboard is compared with the stored one.
    """
    content = dashboard_content(raw)
    if PARSE_ON_CHANGE_MARKER not in content:
        return True
    if not stored_content:
        return True

    try:
        stored = json.loads(stored_content)
    except ValueError:
        return content != stored_content
    return stored != raw


class DashboardLoader:
    """Resolves a dashboard reference into a parsed dashboard."""

    def __init__(self, client: DynatraceClient) -> None:
        self.client = client

    def load(
        self,
        reference: str,
        context: DeliveryContext,
        stored_content: str = "",
    ) -> DashboardLoadResult:
        """
        Load the dashboard a reference points to.

        Args:
            reference: Empty, "query" or a dashboard UUID
            context: Project, stage and service used for the "query" search
            stored_content: Dashboard content persisted by a previous pass

        Returns:
            DashboardLoadResult in state SKIPPED, UNCHANGED or LOADED

        Raises:
            InvalidDashboardIDError: If the reference is not a valid UUID
            DashboardLoadError: If the dashboard could not be fetched or decoded
            BackendError: If listing dashboards for "query" failed
        """
        log = logger.bind(project=context.project, stage=context.stage, service=context.service)

        if not reference and stored_content:
            log.debug("dashboard_reference_defaulted", reference=DASHBOARD_QUERY)
            reference = DASHBOARD_QUERY

        if not reference:
            log.debug("dashboard_not_requested")
            return DashboardLoadResult(state=DashboardLoadState.SKIPPED)

        if reference == DASHBOARD_QUERY:
            dashboard_id = find_dashboard(self.client.list_dashboards(), context)
            if dashboard_id is None:
                log.debug("dashboard_query_no_match")
                return DashboardLoadResult(state=DashboardLoadState.SKIPPED)
            log.debug("dashboard_query_matched", dashboard=dashboard_id)
            reference = dashboard_id

        if not is_valid_uuid(reference):
            log.error("dashboard_invalid_id", dashboard=reference)
            raise InvalidDashboardIDError(
                f"Dashboard ID {reference} not a valid UUID",
                details={"dashboard": reference},
            )

        try:
            raw = self.client.get_dashboard(reference)
        except BackendError as exc:
            log.error("dashboard_fetch_failed", dashboard=reference, error=exc.message)
            raise DashboardLoadError(
                f"could not load dashboard {reference}: {exc.message}",
                details={"dashboard": reference},
            ) from exc

        try:
            dashboard = Dashboard.model_validate(raw)
        except ValidationError as exc:
            log.error("dashboard_decode_failed", dashboard=reference)
            raise DashboardLoadError(
                f"could not decode dashboard {reference}: {exc}",
                details={"dashboard": reference},
            ) from exc

        content = dashboard_content(raw)
        if not has_dashboard_changed(raw, stored_content):
            log.debug("dashboard_unchanged", dashboard=reference)
            state = DashboardLoadState.UNCHANGED
        else:
            log.debug("dashboard_loaded", dashboard=reference, tiles=len(dashboard.tiles))
            state = DashboardLoadState.LOADED

        return DashboardLoadResult(
            state=state,
            dashboard_id=reference,
            dashboard=dashboard,
            content=content,
            raw=raw,
        )
