from .auth import User, SessionToken
from .clients import Client, ClientOrigin
from .catalog import Service, PriceRange
from .sales import Sale, SaleItem
from .packages import ClientPackage, PackageConsumption
from .commissions import Commission, Holiday

__all__ = [
    'User', 'SessionToken',
    'Client', 'ClientOrigin',
    'Service', 'PriceRange',
    'Sale', 'SaleItem',
    'ClientPackage', 'PackageConsumption',
    'Commission', 'Holiday',
]
