"""Database connection, schema initialization, and context manager."""

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

__all__ = ['DB_PATH', 'get_connection', 'get_db', 'init_db']

# Database file path - override with WEALTHLEDGER_DATA_DIR env var
_data_dir = Path(os.environ.get('WEALTHLEDGER_DATA_DIR', str(Path.cwd())))
DB_PATH = _data_dir / "wealthledger.db"


def get_connection() -> sqlite3.Connection:
    """Get a database connection with row factory."""
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    """Initialize the database schema."""
    with get_db() as conn:
        cursor = conn.cursor()

        # Investments (base record; detail lives in one table per type)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id INTEGER NOT NULL,
                investment_type TEXT NOT NULL,
                name TEXT NOT NULL,
                is_active INTEGER DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_inv_owner ON investments(owner_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_inv_type ON investments(investment_type)")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_fd (
                investment_id INTEGER PRIMARY KEY,
                principal_paise INTEGER NOT NULL,
                interest_rate REAL NOT NULL,
                compounding TEXT DEFAULT 'quarterly',
                start_date DATE NOT NULL,
                maturity_date DATE,
                bank_name TEXT,
                is_closed_early INTEGER DEFAULT 0,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_rd (
                investment_id INTEGER PRIMARY KEY,
                monthly_installment_paise INTEGER NOT NULL,
                interest_rate REAL NOT NULL,
                compounding TEXT DEFAULT 'quarterly',
                start_date DATE NOT NULL,
                maturity_date DATE,
                bank_name TEXT,
                is_closed_early INTEGER DEFAULT 0,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        # Shared by mf_equity / mf_hybrid / mf_debt
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_mf (
                investment_id INTEGER PRIMARY KEY,
                isin_code TEXT,
                scheme_code TEXT,
                amfi_code TEXT,
                scheme_name TEXT,
                folio_number TEXT,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_shares (
                investment_id INTEGER PRIMARY KEY,
                ticker_symbol TEXT,
                exchange TEXT DEFAULT 'NSE',
                company_name TEXT,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_gold (
                investment_id INTEGER PRIMARY KEY,
                weight_grams REAL NOT NULL,
                purity TEXT DEFAULT '24K',
                purchase_price_per_gram_paise INTEGER DEFAULT 0,
                purchase_date DATE,
                form TEXT DEFAULT 'physical',
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_loan (
                investment_id INTEGER PRIMARY KEY,
                principal_paise INTEGER NOT NULL,
                interest_rate REAL NOT NULL,
                emi_paise INTEGER NOT NULL,
                start_date DATE NOT NULL,
                end_date DATE,
                loan_type TEXT DEFAULT 'other',
                lender TEXT,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_fixed_asset (
                investment_id INTEGER PRIMARY KEY,
                purchase_price_paise INTEGER NOT NULL,
                inflation_rate REAL DEFAULT 0,
                purchase_date DATE NOT NULL,
                category TEXT DEFAULT 'other',
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_pension (
                investment_id INTEGER PRIMARY KEY,
                interest_rate REAL DEFAULT 0,
                pension_type TEXT DEFAULT 'other',
                start_date DATE,
                account_number TEXT,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_savings_account (
                investment_id INTEGER PRIMARY KEY,
                interest_rate REAL DEFAULT 0,
                bank_name TEXT,
                account_number TEXT,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_expense (
                investment_id INTEGER PRIMARY KEY,
                amount_paise INTEGER NOT NULL,
                start_date DATE,
                expense_date DATE,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        # Transactions (amount_paise is a positive magnitude)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                investment_id INTEGER NOT NULL,
                owner_id INTEGER,
                txn_type TEXT NOT NULL,
                date DATE NOT NULL,
                amount_paise INTEGER NOT NULL,
                units REAL,
                price_per_unit_paise INTEGER,
                fees_paise INTEGER DEFAULT 0,
                notes TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_txn_inv_date ON investment_transactions(investment_id, date)")

        # FIFO lots
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_lots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                investment_id INTEGER NOT NULL,
                buy_txn_id INTEGER NOT NULL,
                buy_date DATE NOT NULL,
                units_bought REAL NOT NULL,
                units_remaining REAL NOT NULL,
                cost_per_unit_paise INTEGER NOT NULL,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE,
                FOREIGN KEY (buy_txn_id) REFERENCES investment_transactions(id) ON DELETE CASCADE
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_lots_inv ON investment_lots(investment_id, buy_date)")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS lot_sell_allocations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sell_txn_id INTEGER NOT NULL,
                lot_id INTEGER NOT NULL,
                units_sold REAL NOT NULL,
                cost_per_unit_paise INTEGER NOT NULL,
                FOREIGN KEY (sell_txn_id) REFERENCES investment_transactions(id) ON DELETE CASCADE,
                FOREIGN KEY (lot_id) REFERENCES investment_lots(id) ON DELETE CASCADE
            )
        """)

        # User-asserted values
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS investment_overrides (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                investment_id INTEGER NOT NULL,
                override_date DATE NOT NULL,
                value_paise INTEGER NOT NULL,
                reason TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        # Market price cache (written by the market-data collaborator)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS market_prices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL,
                source TEXT NOT NULL,
                date DATE NOT NULL,
                price_paise INTEGER NOT NULL,
                UNIQUE(symbol, source, date)
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_mp_symbol_date ON market_prices(symbol, date)")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS gold_prices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date DATE NOT NULL UNIQUE,
                price_per_gram_paise INTEGER NOT NULL
            )
        """)

        # Snapshots (replace semantics on the unique keys)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS monthly_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                investment_id INTEGER NOT NULL,
                year_month TEXT NOT NULL,
                invested_paise INTEGER NOT NULL,
                current_value_paise INTEGER NOT NULL,
                gain_paise INTEGER NOT NULL,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE,
                UNIQUE(investment_id, year_month)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS net_worth_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id INTEGER NOT NULL,
                year_month TEXT NOT NULL,
                total_invested_paise INTEGER NOT NULL,
                total_value_paise INTEGER NOT NULL,
                total_debt_paise INTEGER NOT NULL,
                net_worth_paise INTEGER NOT NULL,
                breakdown_json TEXT,
                goals_json TEXT,
                UNIQUE(owner_id, year_month)
            )
        """)

        # Goals
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS goals (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                target_amount_paise INTEGER NOT NULL,
                target_date DATE NOT NULL,
                priority INTEGER DEFAULT 5,
                notes TEXT,
                is_active INTEGER DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS goal_investments (
                goal_id INTEGER NOT NULL,
                investment_id INTEGER NOT NULL,
                allocation_percent REAL NOT NULL DEFAULT 100,
                FOREIGN KEY (goal_id) REFERENCES goals(id) ON DELETE CASCADE,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE,
                PRIMARY KEY (goal_id, investment_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS recurring_rules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                investment_id INTEGER NOT NULL,
                amount_paise INTEGER NOT NULL,
                frequency TEXT NOT NULL DEFAULT 'monthly',
                start_date DATE NOT NULL,
                end_date DATE,
                is_active INTEGER DEFAULT 1,
                FOREIGN KEY (investment_id) REFERENCES investments(id) ON DELETE CASCADE
            )
        """)

        # Key/value settings (per-class default rates etc.)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS app_config (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    logger.debug(f"Database initialized at {DB_PATH}")
