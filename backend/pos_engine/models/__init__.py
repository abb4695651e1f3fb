from .auth import User
from .catalog import Category, Product
from .inventory import StockMovement
from .customers import MembershipTier, CustomerGroup, CustomerGroupMember, Customer, LoyaltyPointsHistory
from .discounts import DiscountSetting, DiscountReason
from .promotions import Promotion, PromotionUsage
from .sales import Sale, SaleItem, SalePayment, SaleDiscount
from .documents import DocumentSequence

__all__ = [
    'User',
    'Category', 'Product',
    'StockMovement',
    'MembershipTier', 'CustomerGroup', 'CustomerGroupMember', 'Customer', 'LoyaltyPointsHistory',
    'DiscountSetting', 'DiscountReason',
    'Promotion', 'PromotionUsage',
    'Sale', 'SaleItem', 'SalePayment', 'SaleDiscount',
    'DocumentSequence',
]
