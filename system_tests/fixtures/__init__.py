"""
System test fixtures package.
"""

from system_tests.fixtures.service_context import TEST_USERS, ServiceContext, TestUser

__all__ = [
    "ServiceContext",
    "TEST_USERS",
    "TestUser",
]
