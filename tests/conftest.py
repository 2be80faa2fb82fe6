"""
Pytest configuration and shared fixtures for Tradebook tests
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tradebook.models import AssetType, CanonicalFill, Direction  # noqa: E402
from tradebook.reconciliation.diagnostics import DiagnosticLog  # noqa: E402


BASE_TIME = datetime(2024, 3, 1, 14, 30, tzinfo=timezone.utc)


def make_fill(instrument="BTCUSDT", minutes=0, price=100.0, quantity=1.0,
              direction=Direction.LONG, is_opening=True, fee=0.0,
              asset_type=AssetType.CRYPTO, multiplier=1.0, **kwargs):
    """Build a CanonicalFill at BASE_TIME + minutes"""
    return CanonicalFill(
        instrument=instrument,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        price=price,
        quantity=quantity,
        direction=direction,
        is_opening=is_opening,
        fee=fee,
        asset_type=asset_type,
        multiplier=multiplier,
        **kwargs
    )


@pytest.fixture
def log():
    """Fresh diagnostic log"""
    return DiagnosticLog()


@pytest.fixture
def as_of():
    """Fixed reference time for expiration checks"""
    return datetime(2025, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create temporary config directory for testing"""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def bybit_closed_pnl_csv():
    """ByBit closed-P&L style export with a preamble line"""
    return (
        "Closed P&L export,UID 1234\n"
        "Contracts,Side,Qty,Exec Price,Closed P&L,Trading Fee,Transaction Time\n"
        "BTCUSDT,Buy,0.5,40000,0,2.0,2024-03-01 10:00:00\n"
        "BTCUSDT,Sell,0.5,41000,500,2.0,2024-03-01 12:00:00\n"
    )


@pytest.fixture
def schwab_realized_csv():
    """Schwab Realized Gain/Loss Details export"""
    return (
        '"Realized Gain/Loss - Lot Details for XXXX-1234 as of 03/05/2024"\n'
        '"Symbol","Name","Closed Date","Opened Date","Quantity","Proceeds","Cost Basis (CB)","Total Gain/Loss ($)"\n'
        '"ISRG  251031C00600000","CALL INTUITIVE SURGICAL","03/04/2024","03/01/2024","1","$200.00","$100.00","$100.00"\n'
        '"AAPL","APPLE INC","03/04/2024","02/01/2024","10","$1,800.00","$1,700.00","$100.00"\n'
        '"Total","","","","","$2,000.00","$1,800.00","$200.00"\n'
    )


# Pytest markers and configuration
def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add default markers"""
    for item in items:
        if "pipeline" in str(item.fspath) or "cli" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# Environment setup
@pytest.fixture(autouse=True)
def test_environment():
    """Set up test environment"""
    os.environ['TESTING'] = 'true'

    yield

    os.environ.pop('TESTING', None)
