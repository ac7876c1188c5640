"""
Excel File Manager with Concurrency Control

Process-safe order ledger used by the back office. Each submitted order
is appended as one row; a file lock serializes concurrent Celery workers.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from filelock import FileLock, Timeout

from restaurante.core.config import get_settings

logger = logging.getLogger(__name__)


class ExcelManager:
    """Process-safe Excel order ledger."""

    ORDER_COLUMNS = [
        "order_id",
        "date_time",
        "user_id",
        "client_ref",
        "payment_method",
        "total",
        "status",
        "items",
        "has_receipt",
        "exported_at",
    ]

    @staticmethod
    def orders_file() -> Path:
        settings = get_settings()
        return Path(settings.data_directory) / settings.excel_filename

    @classmethod
    def _lock(cls) -> FileLock:
        path = cls.orders_file()
        return FileLock(str(path.with_name(path.name + ".lock")), timeout=get_settings().excel_lock_timeout)

    @classmethod
    def _ensure_data_dir(cls) -> None:
        """Create data directory if needed."""
        data_dir = cls.orders_file().parent
        if not data_dir.exists():
            data_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {data_dir}")

    @classmethod
    def _load_or_create_df(cls, file_path: Path) -> pd.DataFrame:
        """Load existing file or create new DataFrame."""
        if file_path.exists():
            return pd.read_excel(file_path, engine="openpyxl")
        return pd.DataFrame(columns=cls.ORDER_COLUMNS)

    @classmethod
    def export_order(cls, order_data: dict[str, Any]) -> dict[str, Any]:
        """
        Append an order to the ledger.

        Raises:
            filelock.Timeout: Another worker held the lock too long
        """
        cls._ensure_data_dir()
        orders_file = cls.orders_file()
        order_id = order_data.get("order_id", 0)

        try:
            with cls._lock():
                logger.debug(f"Lock acquired for Order #{order_id}")

                df = cls._load_or_create_df(orders_file)

                export_time = datetime.now().isoformat()
                new_row = {
                    "order_id": order_id,
                    "date_time": order_data.get("created_at", export_time),
                    "user_id": order_data.get("user_id"),
                    "client_ref": order_data.get("client_ref"),
                    "payment_method": order_data.get("payment_method"),
                    "total": order_data.get("total"),
                    "status": order_data.get("status"),
                    "items": order_data.get("items"),
                    "has_receipt": order_data.get("has_receipt", False),
                    "exported_at": export_time,
                }

                df = pd.concat([df, pd.DataFrame([new_row])], ignore_index=True)
                df.to_excel(str(orders_file), index=False, engine="openpyxl")

            logger.info(f"Order #{order_id} exported to Excel")
        except Timeout:
            logger.error(f"Lock timeout for Order #{order_id}")
            raise

        return {
            "success": True,
            "message": f"Order #{order_id} exported",
            "order_id": order_id,
            "exported_at": export_time,
        }

    @classmethod
    def get_all_orders(cls) -> list[dict[str, Any]]:
        """Get all exported orders."""
        orders_file = cls.orders_file()
        if not orders_file.exists():
            return []
        with cls._lock():
            df = pd.read_excel(orders_file, engine="openpyxl")
        return df.to_dict("records")
