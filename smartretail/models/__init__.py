from smartretail.models.store_models import Order, OrderStatus, Store  # noqa: F401
from smartretail.models.tax_models import (  # noqa: F401
    DeclarationCategoryRevenue,
    DeclarationEnvironmentalItem,
    DeclarationSpecialConsumptionItem,
    DeclarationStatus,
    TaxDeclaration,
    TaxDeclarationFamily,
)
