"""
Pytest configuration file for backend testing.
"""
import sys
from pathlib import Path

# Add the backend directory to Python path so imports work correctly
backend_dir = Path(__file__).parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Import all models so every table is registered on Base.metadata
from modules.orders.models import order_models  # noqa: E402,F401
from modules.customers.models import customer_models  # noqa: E402,F401
from modules.loyalty.models import loyalty_models  # noqa: E402,F401
