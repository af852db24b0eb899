"""Shared test fixtures."""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from uuid import UUID

import pytest

from scan_safety.config import Settings
from scan_safety.containers import AppContainer
from scan_safety.domain.products import Product
from scan_safety.domain.restrictions import (
    DietaryRestriction,
    RestrictionCategory,
    Severity,
    SubjectKind,
    SubjectRef,
    SubjectRestriction,
)
from scan_safety.domain.safety import IngredientRiskRecord, RiskLevel, SafetyAssessment
from scan_safety.domain.sessions import (
    CameraCapabilities,
    DeviceSupport,
    PermissionStatus,
)
from scan_safety.services.assessments import (
    AssessmentRepository,
    AssessmentService,
    RiskRecordRepository,
)
from scan_safety.services.cache import InMemoryCache
from scan_safety.services.catalog import (
    ExternalProductClient,
    ProductCatalog,
    ProductRepository,
)
from scan_safety.services.restrictions import RestrictionRepository, RestrictionResolver

PEANUT_ID = UUID("00000000-0000-0000-0000-000000000001")
MILK_ID = UUID("00000000-0000-0000-0000-000000000002")
GLUTEN_ID = UUID("00000000-0000-0000-0000-000000000003")
USER = SubjectRef(
    kind=SubjectKind.USER, id=UUID("10000000-0000-0000-0000-000000000001")
)

COLA_INGREDIENTS = "water, high fructose corn syrup, caramel color, caffeine"

DEFINITIONS = {
    PEANUT_ID: DietaryRestriction(
        id=PEANUT_ID,
        name="peanuts",
        category=RestrictionCategory.ALLERGY,
        common_names=frozenset({"peanut", "groundnut"}),
        cross_contamination_risk=True,
        default_severity=Severity.LIFE_THREATENING,
    ),
    MILK_ID: DietaryRestriction(
        id=MILK_ID,
        name="milk",
        category=RestrictionCategory.ALLERGY,
        common_names=frozenset({"dairy"}),
    ),
    GLUTEN_ID: DietaryRestriction(
        id=GLUTEN_ID,
        name="gluten",
        category=RestrictionCategory.MEDICAL,
        default_severity=Severity.SEVERE,
    ),
}

RISK_RECORDS = [
    IngredientRiskRecord(
        match_terms=frozenset({"peanut", "peanuts", "groundnut", "arachis oil"}),
        restriction_id=PEANUT_ID,
        risk_level=RiskLevel.DANGER,
    ),
    IngredientRiskRecord(
        match_terms=frozenset({"milk", "whey", "casein", "butter"}),
        restriction_id=MILK_ID,
        risk_level=RiskLevel.DANGER,
    ),
    IngredientRiskRecord(
        match_terms=frozenset({"lactic acid"}),
        restriction_id=MILK_ID,
        risk_level=RiskLevel.CAUTION,
    ),
    IngredientRiskRecord(
        match_terms=frozenset({"wheat", "barley", "rye"}),
        restriction_id=GLUTEN_ID,
        risk_level=RiskLevel.DANGER,
    ),
    IngredientRiskRecord(
        match_terms=frozenset({"oats"}),
        restriction_id=GLUTEN_ID,
        risk_level=RiskLevel.DANGER,
        cross_contamination_only=True,
    ),
]


def make_product(  # noqa: PLR0913
    ingredients_text: str = COLA_INGREDIENTS,
    *,
    barcode: str = "012000005107",
    name: str = "Cola",
    declared_allergens: Iterable[str] = (),
    data_quality_score: int = 80,
    verification_count: int = 2,
    brand: str | None = "Fizz Co",
) -> Product:
    return Product(
        id=f"product-{barcode}",
        barcode=barcode,
        name=name,
        ingredients_text=ingredients_text,
        declared_allergens=frozenset(declared_allergens),
        data_quality_score=data_quality_score,
        verification_count=verification_count,
        brand=brand,
    )


def binding(
    restriction_id: UUID,
    severity: Severity = Severity.SEVERE,
    *,
    sensitive: bool = False,
    active: bool = True,
) -> SubjectRestriction:
    return SubjectRestriction(
        restriction_id=restriction_id,
        severity=severity,
        cross_contamination_sensitive=sensitive,
        active=active,
    )


@dataclass
class InMemoryRestrictionRepository(RestrictionRepository):
    """In-memory restriction repository for tests."""

    bindings: dict[SubjectRef, list[SubjectRestriction]] = field(default_factory=dict)
    definitions: dict[UUID, DietaryRestriction] = field(
        default_factory=lambda: dict(DEFINITIONS)
    )
    list_calls: int = 0

    def list_subject_restrictions(
        self, subject: SubjectRef
    ) -> list[SubjectRestriction]:
        self.list_calls += 1
        return list(self.bindings.get(subject, []))

    def get_definitions(
        self, restriction_ids: Iterable[UUID]
    ) -> dict[UUID, DietaryRestriction]:
        return {
            item: self.definitions[item]
            for item in restriction_ids
            if item in self.definitions
        }


@dataclass
class InMemoryRiskRecordRepository(RiskRecordRepository):
    """In-memory risk record repository for tests."""

    records: list[IngredientRiskRecord] = field(
        default_factory=lambda: list(RISK_RECORDS)
    )
    calls: int = 0

    def list_for_restrictions(
        self, restriction_ids: Iterable[UUID]
    ) -> list[IngredientRiskRecord]:
        self.calls += 1
        wanted = set(restriction_ids)
        return [record for record in self.records if record.restriction_id in wanted]


@dataclass
class InMemoryAssessmentRepository(AssessmentRepository):
    """Records stored verdicts."""

    saved: list[tuple[SubjectRef, SafetyAssessment]] = field(default_factory=list)
    fail: bool = False

    def save_assessment(
        self, subject: SubjectRef, assessment: SafetyAssessment
    ) -> None:
        if self.fail:
            raise RuntimeError("database unavailable")
        self.saved.append((subject, assessment))


@dataclass
class InMemoryProductRepository(ProductRepository):
    """In-memory product catalog keyed by barcode."""

    products: dict[str, Product] = field(default_factory=dict)
    saved: list[Product] = field(default_factory=list)
    lookups: list[str] = field(default_factory=list)
    fail: bool = False

    def find_by_barcode(self, barcode: str) -> Product | None:
        self.lookups.append(barcode)
        if self.fail:
            raise RuntimeError("database unavailable")
        return self.products.get(barcode)

    def save_product(self, product: Product) -> Product:
        self.saved.append(product)
        self.products[product.barcode] = product
        return product


@dataclass
class FakeOpenFoodFactsClient(ExternalProductClient):
    """Fake Open Food Facts client with canned payloads."""

    payloads: dict[str, dict[str, object]] = field(default_factory=dict)
    errors: list[Exception] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)

    async def get_product(self, barcode: str) -> dict[str, object]:
        self.calls.append(barcode)
        if self.errors:
            raise self.errors.pop(0)
        return self.payloads.get(barcode, {"status": 0})


@dataclass
class ScriptedLookup:
    """Product lookup with a configurable delay and failure."""

    products: dict[str, Product] = field(default_factory=dict)
    delay_seconds: float = 0.0
    error: Exception | None = None
    calls: list[str] = field(default_factory=list)

    async def find_by_barcode(self, barcode: str) -> Product | None:
        self.calls.append(barcode)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return self.products.get(barcode)


@dataclass
class FakeCamera:
    """Camera handle that remembers whether it was released."""

    closed: bool = False

    def close(self) -> None:
        self.closed = True


@dataclass
class FakeCapabilityProvider:
    """Scriptable device capabilities."""

    has_camera: bool = True
    support: DeviceSupport = field(default_factory=lambda: DeviceSupport(True))
    permission: PermissionStatus = field(
        default_factory=lambda: PermissionStatus(granted=False)
    )
    request_results: list[PermissionStatus] = field(
        default_factory=lambda: [PermissionStatus(granted=True)]
    )
    open_error: Exception | None = None
    check_calls: int = 0
    request_calls: int = 0
    cameras: list[FakeCamera] = field(default_factory=list)
    on_decode: Callable[[str, str], None] | None = None
    on_error: Callable[[str], None] | None = None

    async def check_permission(self) -> PermissionStatus:
        self.check_calls += 1
        return self.permission

    async def request_permission(self) -> PermissionStatus:
        self.request_calls += 1
        if self.request_results:
            self.permission = self.request_results.pop(0)
        return self.permission

    async def get_capabilities(self) -> CameraCapabilities:
        return CameraCapabilities(has_camera=self.has_camera, has_flash=True)

    async def is_device_supported(self) -> DeviceSupport:
        return self.support

    def open_camera(
        self,
        on_decode: Callable[[str, str], None],
        on_error: Callable[[str], None],
    ) -> FakeCamera:
        if self.open_error is not None:
            raise self.open_error
        self.on_decode = on_decode
        self.on_error = on_error
        camera = FakeCamera()
        self.cameras.append(camera)
        return camera

    def decode(self, symbol: str, symbology: str = "upc_a") -> None:
        assert self.on_decode is not None
        self.on_decode(symbol, symbology)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
    )


@pytest.fixture
def restriction_repository() -> InMemoryRestrictionRepository:
    return InMemoryRestrictionRepository(
        bindings={USER: [binding(PEANUT_ID, Severity.LIFE_THREATENING)]}
    )


@pytest.fixture
def product_repository() -> InMemoryProductRepository:
    cola = make_product()
    snack = make_product(
        "peanuts, salt, sunflower oil",
        barcode="041220576463",
        name="Roasted Peanuts",
    )
    return InMemoryProductRepository(
        products={cola.barcode: cola, snack.barcode: snack}
    )


@pytest.fixture
def container(
    settings: Settings,
    restriction_repository: InMemoryRestrictionRepository,
    product_repository: InMemoryProductRepository,
) -> AppContainer:
    cache = InMemoryCache()
    catalog = ProductCatalog(
        repository=product_repository,
        external_client=FakeOpenFoodFactsClient(),
        cache=cache,
        retry_delay_seconds=0,
    )
    resolver = RestrictionResolver(restriction_repository)
    assessment_service = AssessmentService(
        resolver=resolver,
        risk_repository=InMemoryRiskRecordRepository(),
        catalog=catalog,
        cache=cache,
        assessment_repository=InMemoryAssessmentRepository(),
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        catalog=catalog,
        restriction_resolver=resolver,
        assessment_service=assessment_service,
        close_resources=close_resources,
    )
