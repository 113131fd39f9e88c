"""Core database models"""
from .seller_accounts import User, SellerAccount
from .report_snapshots import ReportSnapshot
from .data_fetch_tracking import DataFetchTracking

__all__ = ["User", "SellerAccount", "ReportSnapshot", "DataFetchTracking"]
