"""
RSS Settlement - Revenue Sharing Settlement Engine

Settles the pending charging transactions of content providers under their
revenue sharing models and records the resulting sharing reports.

Core Components:
    - SettlementManager: Runs settlement jobs and exposes report operations
    - ScopeResolver: Expands (aggregator, provider, product class) filters
    - TaskPoolManager: Callback-keyed worker pools with completion notification
    - SettlementTask: Allocation and report generation for one model
    - ReportService: Report building, queries and the paid flag

Infrastructure:
    - storage: Pluggable storage backends (Memory, PostgreSQL)
    - monitoring: Metrics and structured logging

Usage:
    from config import SettlementConfig
    from rss_models import SettlementJob
    from settlement_manager import SettlementManager

    manager = SettlementManager.from_config(SettlementConfig.from_env())
    manager.run_settlement(SettlementJob(callback_url="https://example.com/cb"))
"""

__version__ = "0.1.0"
