# API v1 Package
from finhub.api.v1 import auth, companies, users, crm, sales, purchases, audit

__all__ = [
    'auth',
    'companies',
    'users',
    'crm',
    'sales',
    'purchases',
    'audit',
]
