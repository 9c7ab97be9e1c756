"""
Pytest configuration for Django tests.
"""
import os

import django
import pytest
from django.conf import settings
from django.test.utils import get_runner

# Set the Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'procurement_backend.settings')

# Configure Django
django.setup()


@pytest.fixture(scope='session', autouse=True)
def django_test_database():
    """Create the test database once for the whole run."""
    runner = get_runner(settings)(verbosity=0, interactive=False)
    runner.setup_test_environment()
    old_config = runner.setup_databases()
    yield
    runner.teardown_databases(old_config)
    runner.teardown_test_environment()
