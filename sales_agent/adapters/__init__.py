from sales_agent.adapters.base import (
    CommerceAdapters,
    CustomerAdapter,
    OrderAdapter,
    PaymentAdapter,
    ProductAdapter,
)
from sales_agent.adapters.memory import MemoryCommerceBackend, create_memory_adapters
from sales_agent.adapters.sql import SQLDatabase, create_sql_adapters

__all__ = [
    "CommerceAdapters",
    "CustomerAdapter",
    "OrderAdapter",
    "PaymentAdapter",
    "ProductAdapter",
    "MemoryCommerceBackend",
    "create_memory_adapters",
    "SQLDatabase",
    "create_sql_adapters",
]
