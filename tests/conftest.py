"""Pytest configuration and fixtures."""

import os

import pytest


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["AI_GATEWAY_ACCOUNT_ID"] = "test-account"
    os.environ["AI_GATEWAY_TOKEN"] = "test-gateway-token"
    os.environ["AI_WORKER_TOKEN"] = "test-worker-token"
    os.environ["DRAFTWISE_ENV"] = "test"
