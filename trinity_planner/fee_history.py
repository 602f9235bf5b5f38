"""
Fee History Database

SQLite store for fee estimates and vault plans produced by the planner.

Tables:
- fee_estimates: One row per chain estimate
- vault_plans: Deployment plans handed out to users
- errors: Error logging

Writes never raise: failures are logged and reported as False.
"""

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from .models import ChainComparison, FeeEstimate, VaultCreationPlan, decimal_str


class FeeHistoryDB:
    """
    SQLite database for fee and plan history

    Features:
    - Fee estimate logging (live and fallback)
    - Plan recording
    - Error logging
    - Per-chain statistics
    """

    def __init__(self, db_path: str = "fee_history.db"):
        """
        Initialize database

        Args:
            db_path: Path to SQLite database (':memory:' for a throwaway store)
        """
        self.db_path = str(db_path) if db_path == ':memory:' else str(Path(db_path))
        self.conn: Optional[sqlite3.Connection] = None
        # API handlers may run on worker threads
        self._lock = threading.Lock()
        self._initialize_db()
        logger.info(f"Fee history database initialized: {self.db_path}")

    def _initialize_db(self):
        """Initialize database and create tables"""
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self):
        """Create database tables"""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS fee_estimates (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chain TEXT NOT NULL,
                operation_type TEXT NOT NULL,
                fee_native TEXT NOT NULL,
                fee_usd TEXT NOT NULL,
                native_price_usd TEXT NOT NULL,
                congestion TEXT NOT NULL,
                confirm_seconds INTEGER NOT NULL,
                source TEXT NOT NULL,
                fallback_reason TEXT,
                recorded_at TIMESTAMP NOT NULL,
                CONSTRAINT valid_source CHECK (source IN ('live', 'fallback'))
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS vault_plans (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                primary_chain TEXT NOT NULL,
                operation_type TEXT NOT NULL,
                security_level INTEGER NOT NULL,
                selected_fee_usd TEXT NOT NULL,
                cheapest_chain TEXT NOT NULL,
                plan_json TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                CONSTRAINT valid_level CHECK (security_level BETWEEN 1 AND 5)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS errors (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chain TEXT,
                error_type TEXT NOT NULL,
                error_message TEXT NOT NULL,
                occurred_at TIMESTAMP NOT NULL
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_estimates_chain ON fee_estimates(chain)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_estimates_recorded ON fee_estimates(recorded_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_plans_primary ON vault_plans(primary_chain)")

        self.conn.commit()
        logger.debug("Database tables created successfully")

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def record_estimate(self, estimate: FeeEstimate) -> bool:
        """
        Record one fee estimate

        Args:
            estimate: Fee estimate

        Returns:
            Success status
        """
        try:
            with self._lock:
                cursor = self.conn.cursor()
                cursor.execute("""
                    INSERT INTO fee_estimates (
                        chain, operation_type, fee_native, fee_usd, native_price_usd,
                        congestion, confirm_seconds, source, fallback_reason, recorded_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    estimate.chain,
                    estimate.operation_kind,
                    decimal_str(estimate.fee_native),
                    decimal_str(estimate.fee_usd),
                    decimal_str(estimate.native_price_usd),
                    estimate.congestion.value,
                    estimate.estimated_confirm_seconds,
                    estimate.source.value,
                    estimate.fallback_reason,
                    self._now()
                ))
                self.conn.commit()

            logger.debug(f"Estimate recorded: {estimate.chain}/{estimate.operation_kind}")
            return True

        except Exception as e:
            logger.error(f"✗ Error recording estimate: {e}")
            self._rollback()
            return False

    def record_comparison(self, comparison: ChainComparison) -> bool:
        """Record every estimate of a comparison"""
        results = [self.record_estimate(estimate) for estimate in comparison.estimates.values()]
        return all(results)

    def record_plan(self, plan: VaultCreationPlan) -> bool:
        """
        Record a vault deployment plan

        Args:
            plan: Plan returned to the user

        Returns:
            Success status
        """
        try:
            with self._lock:
                cursor = self.conn.cursor()
                cursor.execute("""
                    INSERT INTO vault_plans (
                        primary_chain, operation_type, security_level, selected_fee_usd,
                        cheapest_chain, plan_json, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    plan.primary_chain,
                    plan.operation_kind,
                    plan.security_config.level,
                    decimal_str(plan.selected_fee.fee_usd),
                    plan.cheapest_chain,
                    json.dumps(plan.to_dict()),
                    self._now()
                ))
                self.conn.commit()

            logger.info(f"✓ Plan recorded: {plan.primary_chain} (level {plan.security_config.level})")
            return True

        except Exception as e:
            logger.error(f"✗ Error recording plan: {e}")
            self._rollback()
            return False

    def record_error(self, error_type: str, error_message: str, chain: Optional[str] = None) -> bool:
        """
        Record an error

        Args:
            error_type: Error type
            error_message: Error message
            chain: Related chain, if any

        Returns:
            Success status
        """
        try:
            with self._lock:
                cursor = self.conn.cursor()
                cursor.execute("""
                    INSERT INTO errors (chain, error_type, error_message, occurred_at)
                    VALUES (?, ?, ?, ?)
                """, (chain, error_type, error_message, self._now()))
                self.conn.commit()
            return True

        except Exception as e:
            logger.error(f"Error recording error: {e}")
            self._rollback()
            return False

    def _rollback(self):
        try:
            self.conn.rollback()
        except Exception as e:
            logger.debug(f"Rollback failed: {e}")

    def get_recent_estimates(self, chain: str, limit: int = 20) -> List[Dict]:
        """
        Most recent estimates for a chain, newest first

        Args:
            chain: Chain id
            limit: Max rows

        Returns:
            List of row dicts
        """
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT * FROM fee_estimates
                WHERE chain = ?
                ORDER BY id DESC
                LIMIT ?
            """, (chain, int(limit)))
            return [dict(row) for row in cursor.fetchall()]

    def get_recent_plans(self, limit: int = 20) -> List[Dict]:
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("SELECT * FROM vault_plans ORDER BY id DESC LIMIT ?", (int(limit),))
            return [dict(row) for row in cursor.fetchall()]

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get estimate and plan statistics

        Returns:
            Statistics dictionary
        """
        with self._lock:
            cursor = self.conn.cursor()

            cursor.execute("SELECT COUNT(*) FROM fee_estimates")
            total_estimates = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM fee_estimates WHERE source = 'fallback'")
            fallback_estimates = cursor.fetchone()[0]

            # Fees are stored as text, SQLite casts for the average
            cursor.execute("""
                SELECT chain, COUNT(*), AVG(CAST(fee_usd AS REAL))
                FROM fee_estimates
                GROUP BY chain
            """)
            by_chain = {
                row[0]: {'estimates': row[1], 'avg_fee_usd': row[2] or 0}
                for row in cursor.fetchall()
            }

            cursor.execute("SELECT COUNT(*) FROM vault_plans")
            total_plans = cursor.fetchone()[0]

            cursor.execute("SELECT primary_chain, COUNT(*) FROM vault_plans GROUP BY primary_chain")
            plans_by_primary = {row[0]: row[1] for row in cursor.fetchall()}

            cursor.execute("SELECT COUNT(*) FROM errors")
            total_errors = cursor.fetchone()[0]

        return {
            'total_estimates': total_estimates,
            'fallback_estimates': fallback_estimates,
            'fallback_rate': (fallback_estimates / total_estimates * 100) if total_estimates > 0 else 0,
            'by_chain': by_chain,
            'total_plans': total_plans,
            'plans_by_primary': plans_by_primary,
            'total_errors': total_errors,
        }

    def close(self):
        """Close database connection"""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed")
