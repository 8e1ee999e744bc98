"""Crypto price index collector.

Public API:
    IndexDefinition     - Index name, weighted feeds and smoothing policy
    IndexResult         - One computed index value, with its wire format
    IndexCalculator     - Weighted composition + smoothing over bounded history
    CalculationEngine   - Single task serving "compute now" requests
    FeedWorker          - Polls one feed and publishes observations
    PriceSource         - Abstract interface for market-data sources
    create_price_source - Factory that selects a source (or the simulator)
    create_app          - FastAPI application serving the websocket stream
    run_collector       - Wire everything together and run until shutdown
    Supervisor          - Restarts the collector with backoff
    IndexSubscriber     - Reconnecting websocket client
    load_config         - Read and validate the TOML configuration
"""

from .calculator import CalculationEngine, IndexCalculator
from .client import IndexSubscriber
from .collector import run_collector
from .config import load_config
from .factory import create_price_source
from .ingestion import FeedWorker
from .interface import PriceSource
from .models import IndexDefinition, IndexResult
from .stream import create_app
from .supervisor import Supervisor

__all__ = [
    "IndexDefinition",
    "IndexResult",
    "IndexCalculator",
    "CalculationEngine",
    "FeedWorker",
    "PriceSource",
    "create_price_source",
    "create_app",
    "run_collector",
    "Supervisor",
    "IndexSubscriber",
    "load_config",
]
