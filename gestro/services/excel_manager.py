"""
Excel File Manager with Concurrency Control

Process-safe Excel operations for:
- The order ledger (one row appended per order)
- The reservation ledger (one row appended per reservation)
- On-demand order reports (xlsx or csv bytes for download)

Ledger writers run in Celery workers; a FileLock per workbook keeps
concurrent workers from overwriting each other's rows.

Author: Khalil Bannouri
Version: 1.0.0
"""

import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

import pandas as pd
from filelock import FileLock, Timeout

from gestro.core.config import get_settings

logger = logging.getLogger(__name__)

ORDERS_FILENAME = "orders.xlsx"
RESERVATIONS_FILENAME = "reservations.xlsx"

REPORT_FORMATS = ("xlsx", "csv")


class ExcelManager:
    """Process-safe Excel file manager."""

    ORDER_COLUMNS = [
        "order_id",
        "date_time",
        "customer_name",
        "customer_email",
        "customer_phone",
        "table_number",
        "items",
        "notes",
        "total_amount",
        "payment_status",
        "payment_transaction_id",
        "order_status",
        "exported_at",
    ]

    RESERVATION_COLUMNS = [
        "reservation_id",
        "reservation_date",
        "start_time",
        "end_time",
        "table_number",
        "party_size",
        "customer_name",
        "status",
        "notes",
        "exported_at",
    ]

    @staticmethod
    def data_dir() -> Path:
        return Path(get_settings().data_directory)

    @classmethod
    def orders_file(cls) -> Path:
        return cls.data_dir() / ORDERS_FILENAME

    @classmethod
    def reservations_file(cls) -> Path:
        return cls.data_dir() / RESERVATIONS_FILENAME

    @staticmethod
    def _lock_for(file_path: Path) -> FileLock:
        return FileLock(f"{file_path}.lock", timeout=get_settings().excel_lock_timeout)

    @classmethod
    def _ensure_data_dir(cls) -> None:
        """Create data directory if needed."""
        data_dir = cls.data_dir()
        if not data_dir.exists():
            data_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {data_dir}")

    @classmethod
    def _load_or_create_df(cls, file_path: Path, columns: list) -> pd.DataFrame:
        """Load existing file or create new DataFrame."""
        if file_path.exists():
            try:
                return pd.read_excel(file_path, engine="openpyxl")
            except (OSError, ValueError) as e:
                logger.warning(f"Error reading {file_path}: {e}")
                return pd.DataFrame(columns=columns)
        return pd.DataFrame(columns=columns)

    @staticmethod
    def format_items(items: Iterable[dict]) -> str:
        """'2x Pizza Margherita, 1x Lemonade'"""
        return ", ".join(
            f"{item.get('quantity', 1)}x {item.get('name') or item.get('product_id')}"
            for item in items
        )

    @classmethod
    def _append_row(cls, file_path: Path, columns: list, row: dict, label: str) -> dict[str, Any]:
        cls._ensure_data_dir()

        result = {
            "success": False,
            "message": "",
            "exported_at": None,
            "retryable": False,
        }

        try:
            with cls._lock_for(file_path):
                logger.debug(f"Lock acquired for {label}")

                df = cls._load_or_create_df(file_path, columns)

                export_time = datetime.now().isoformat()
                new_row = {column: row.get(column) for column in columns}
                new_row["exported_at"] = export_time

                df = pd.concat([df, pd.DataFrame([new_row], columns=columns)], ignore_index=True)
                df.to_excel(str(file_path), index=False, engine="openpyxl")

                logger.info(f"{label} exported to Excel")

                result["success"] = True
                result["message"] = f"{label} exported"
                result["exported_at"] = export_time

            logger.debug(f"Lock released for {label}")

        except Timeout:
            result["message"] = f"Lock timeout ({get_settings().excel_lock_timeout}s)"
            result["retryable"] = True
            logger.error(f"Lock timeout for {label}")

        except (OSError, ValueError) as e:
            result["message"] = str(e)
            logger.exception(f"Error exporting {label}")

        return result

    # =========================================================================
    # LEDGERS
    # =========================================================================

    @classmethod
    def export_order(cls, order_data: dict[str, Any]) -> dict[str, Any]:
        """Append an order to the order ledger with file locking."""
        order_id = order_data.get("order_id", "unknown")
        row = {
            **order_data,
            "date_time": order_data.get("created_at"),
            "items": cls.format_items(order_data.get("items") or []),
        }
        result = cls._append_row(cls.orders_file(), cls.ORDER_COLUMNS, row, f"Order #{order_id}")
        result["order_id"] = order_id
        return result

    @classmethod
    def export_reservation(cls, reservation_data: dict[str, Any]) -> dict[str, Any]:
        """Append a reservation to the reservation ledger with file locking."""
        reservation_id = reservation_data.get("reservation_id", "unknown")
        result = cls._append_row(
            cls.reservations_file(),
            cls.RESERVATION_COLUMNS,
            reservation_data,
            f"Reservation {reservation_id}",
        )
        result["reservation_id"] = reservation_id
        return result

    @classmethod
    def _read_all(cls, file_path: Path) -> list[dict[str, Any]]:
        if not file_path.exists():
            return []
        try:
            df = pd.read_excel(file_path, engine="openpyxl")
            return df.to_dict("records")
        except (OSError, ValueError) as e:
            logger.error(f"Error reading {file_path}: {e}")
            return []

    @classmethod
    def get_all_orders(cls) -> list[dict[str, Any]]:
        """Get all orders from the ledger."""
        return cls._read_all(cls.orders_file())

    @classmethod
    def get_all_reservations(cls) -> list[dict[str, Any]]:
        """Get all reservations from the ledger."""
        return cls._read_all(cls.reservations_file())

    @classmethod
    def clear_all(cls) -> bool:
        """Delete all ledger files."""
        try:
            for f in (cls.orders_file(), cls.reservations_file()):
                for path in (f, Path(f"{f}.lock")):
                    if path.exists():
                        path.unlink()
            logger.info("All Excel files cleared")
            return True
        except OSError as e:
            logger.error(f"Error clearing files: {e}")
            return False

    # =========================================================================
    # REPORTS
    # =========================================================================

    @classmethod
    def build_orders_report(cls, rows: list[dict[str, Any]], fmt: str = "xlsx") -> bytes:
        """
        Render order rows as a downloadable report.

        Args:
            rows: Flattened orders (see OrderRepository.get_orders_with_customer_info)
            fmt: "xlsx" or "csv"

        Raises:
            ValueError: Unknown format
        """
        if fmt not in REPORT_FORMATS:
            raise ValueError(f"Unsupported report format: {fmt}")

        columns = [
            "id",
            "created_at",
            "status",
            "customer_name",
            "customer_email",
            "table_number",
            "item_count",
            "total_amount",
            "payment_status",
        ]
        df = pd.DataFrame([{column: row.get(column) for column in columns} for row in rows], columns=columns)
        # openpyxl refuses tz-aware datetimes
        df["created_at"] = df["created_at"].map(
            lambda value: value.isoformat() if isinstance(value, datetime) else value
        )

        if fmt == "csv":
            return df.to_csv(index=False).encode("utf-8")

        buffer = io.BytesIO()
        df.to_excel(buffer, index=False, engine="openpyxl", sheet_name="Orders")
        return buffer.getvalue()
