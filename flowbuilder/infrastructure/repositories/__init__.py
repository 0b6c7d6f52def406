from .base import BaseRepository, CompanyScopeRequiredError
from .category_repository import CategoryRepository
from .company_repository import CompanyRepository
from .material_repository import MaterialRepository
from .notification_repository import NotificationRepository
from .project_repository import ProjectRepository
from .purchase_order_repository import PurchaseOrderRepository
from .quote_repository import QuoteRepository
from .rfq_repository import RfqRepository
from .status_event_repository import StatusEventRepository
from .supplier_repository import SupplierRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "CategoryRepository",
    "CompanyRepository",
    "CompanyScopeRequiredError",
    "MaterialRepository",
    "NotificationRepository",
    "ProjectRepository",
    "PurchaseOrderRepository",
    "QuoteRepository",
    "RfqRepository",
    "StatusEventRepository",
    "SupplierRepository",
    "UserRepository",
]
