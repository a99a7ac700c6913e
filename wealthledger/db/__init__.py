"""
Database access layer for wealthledger.

Re-exports all public functions from domain-specific sub-modules.
Import from here or from individual sub-modules:

    from wealthledger.db import get_investment
    from wealthledger.db.investments import get_investment  # same thing
"""

__all__ = [
    # connection
    "DB_PATH", "get_connection", "get_db", "init_db",
    # config
    "get_config", "set_config", "get_config_prefixed",
    # investments
    "DETAIL_TABLES", "create_investment", "update_investment_detail", "deactivate_investment",
    "delete_investment", "get_investment", "get_investments",
    "create_override", "get_latest_override", "get_overrides",
    # transactions
    "create_transaction", "get_transaction", "get_transactions",
    "get_lots", "execute_sell", "get_sell_allocations", "get_sell_allocations_between",
    "get_total_invested", "get_total_invested_as_of", "get_total_units",
    "get_total_units_as_of", "get_first_transaction_date",
    # market_prices
    "MF_SOURCES", "SHARE_SOURCES", "PricePoint", "cache_price", "cache_price_history",
    "get_latest_price", "get_price_on_or_before", "get_earliest_price", "has_price_history",
    "get_price_history", "cache_gold_price", "get_latest_gold_price", "get_gold_price_on_or_before",
    # snapshots
    "save_monthly_snapshot", "delete_monthly_snapshot", "get_monthly_snapshots", "get_monthly_values_by_month",
    "save_net_worth_snapshot", "get_net_worth_snapshot", "get_net_worth_snapshots",
    "get_snapshot_detail", "clear_snapshots",
    # goals
    "create_goal", "update_goal", "delete_goal", "get_goal_by_id", "get_goals_by_owner",
    "get_goal_links", "get_linked_goal_id", "link_investment_to_goal",
    "unlink_investment_from_goal",
    # recurring
    "FREQUENCIES", "create_recurring_rule", "get_recurring_rules", "deactivate_recurring_rule",
]

from wealthledger.db.connection import *  # noqa: F401,F403
from wealthledger.db.config import *  # noqa: F401,F403
from wealthledger.db.investments import *  # noqa: F401,F403
from wealthledger.db.transactions import *  # noqa: F401,F403
from wealthledger.db.market_prices import *  # noqa: F401,F403
from wealthledger.db.snapshots import *  # noqa: F401,F403
from wealthledger.db.goals import *  # noqa: F401,F403
from wealthledger.db.recurring import *  # noqa: F401,F403
