"""Shared fixtures: a sample catalog for a single-table Customer resource."""

import copy

import pytest

CUSTOMER_CATALOG = {
    "version": "1.3",
    "lastModified": "Tue Feb 18 10:00:00 CET 2025",
    "services": [
        {
            "name": "CustomerService",
            "address": "/rest/CustomerService",
            "useRequest": True,
            "resources": [
                {
                    "name": "Customer",
                    "path": "/Customer",
                    "schema": {
                        "type": "object",
                        "properties": {
                            "dsCustomer": {
                                "type": "object",
                                "properties": {
                                    "ttCustomer": {
                                        "type": "array",
                                        "primaryKey": ["CustNum"],
                                        "items": {
                                            "additionalProperties": False,
                                            "properties": {
                                                "CustNum": {"type": "integer", "ablType": "INTEGER", "default": 0},
                                                "Name": {"type": "string", "ablType": "CHARACTER", "default": ""},
                                                "Country": {"type": "string", "default": "USA"},
                                            },
                                        },
                                    }
                                },
                            }
                        },
                    },
                    "operations": [
                        {"path": "?filter={filter}", "type": "read", "verb": "get", "capabilities": "filter,top,skip"},
                        {"path": "", "type": "create", "verb": "post"},
                        {"path": "", "type": "update", "verb": "put"},
                        {"path": "", "type": "delete", "verb": "delete"},
                        {"name": "count", "path": "/count", "type": "invoke", "verb": "put"},
                        {
                            "name": "refresh",
                            "path": "/refresh",
                            "type": "invoke",
                            "verb": "put",
                            "mergeMode": "merge",
                        },
                    ],
                }
            ],
        }
    ],
}


@pytest.fixture
def catalog() -> dict:
    """A fresh, mutable copy of the sample catalog."""
    return copy.deepcopy(CUSTOMER_CATALOG)
