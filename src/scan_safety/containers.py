"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from scan_safety.adapters.openfoodfacts_client import HttpxOpenFoodFactsClient
from scan_safety.adapters.supabase_assessment_repository import (
    SupabaseAssessmentRepository,
)
from scan_safety.adapters.supabase_product_repository import SupabaseProductRepository
from scan_safety.adapters.supabase_restriction_repository import (
    SupabaseRestrictionRepository,
)
from scan_safety.adapters.supabase_risk_record_repository import (
    SupabaseRiskRecordRepository,
)
from scan_safety.config import Settings
from scan_safety.domain.restrictions import SubjectRef
from scan_safety.services.assessments import AssessmentService
from scan_safety.services.cache import InMemoryCache
from scan_safety.services.catalog import ProductCatalog
from scan_safety.services.history import ScanHistory
from scan_safety.services.restrictions import RestrictionResolver
from scan_safety.services.scanner import CapabilityProvider, ScanSessionController


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    catalog: ProductCatalog
    restriction_resolver: RestrictionResolver
    assessment_service: AssessmentService
    close_resources: Callable[[], Awaitable[None]]

    def create_scan_session(
        self,
        capabilities: CapabilityProvider,
        subject: SubjectRef,
        history: ScanHistory | None = None,
    ) -> ScanSessionController:
        """Create a scan session controller for one camera screen."""
        return ScanSessionController(
            capabilities=capabilities,
            catalog=self.catalog,
            assessor=self.assessment_service,
            history=(
                history
                if history is not None
                else ScanHistory(capacity=self.settings.history_capacity)
            ),
            subject=subject,
            debounce_seconds=self.settings.scan_debounce_seconds,
            cooldown_seconds=self.settings.scan_cooldown_seconds,
            duplicate_window_seconds=self.settings.scan_cooldown_seconds,
            lookup_timeout_seconds=self.settings.lookup_timeout_seconds,
        )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    off_client = (
        HttpxOpenFoodFactsClient.create(resolved_settings.openfoodfacts_base_url)
        if resolved_settings.openfoodfacts_enabled
        else None
    )
    cache = InMemoryCache()
    catalog = ProductCatalog(
        repository=SupabaseProductRepository(supabase_client),
        external_client=off_client,
        cache=cache,
        ttl_seconds=resolved_settings.product_cache_ttl_seconds,
        debug=resolved_settings.debug,
    )
    resolver = RestrictionResolver(SupabaseRestrictionRepository(supabase_client))
    assessment_service = AssessmentService(
        resolver=resolver,
        risk_repository=SupabaseRiskRecordRepository(supabase_client),
        catalog=catalog,
        cache=cache,
        assessment_repository=SupabaseAssessmentRepository(supabase_client),
        risk_records_ttl_seconds=resolved_settings.risk_records_ttl_seconds,
    )

    async def close_resources() -> None:
        if off_client is not None:
            await off_client.close()

    return AppContainer(
        settings=resolved_settings,
        catalog=catalog,
        restriction_resolver=resolver,
        assessment_service=assessment_service,
        close_resources=close_resources,
    )
